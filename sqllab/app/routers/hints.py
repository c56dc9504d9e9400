from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from typing import Optional
import logging
import re
from pydantic import AliasChoices, BaseModel, Field, StrictStr, field_validator

from sqllab.app.agents.sql_lab.db import AssignmentStore
from sqllab.app.agents.sql_lab.errors import AssignmentNotFound, UpstreamUnavailable
from sqllab.app.agents.sql_lab.hint_help.hint_agent import HintLLM, generate_hint

router = APIRouter(prefix="/api/hint", tags=["Hints"])
logger = logging.getLogger(__name__)

ASSIGNMENT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


class HintPayload(BaseModel):
    assignment_id: StrictStr = Field(validation_alias=AliasChoices("assignmentId", "assignment_id"))
    user_query: StrictStr = Field(
        validation_alias=AliasChoices("userQuery", "user_query"),
        min_length=1,
    )
    error: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("error", "priorError"),
    )

    @field_validator("assignment_id")
    @classmethod
    def assignment_id_format(cls, value: str) -> str:
        if not ASSIGNMENT_ID_PATTERN.match(value):
            raise ValueError("Invalid assignment ID format")
        return value


def get_assignment_store(request: Request) -> AssignmentStore:
    return request.app.state.assignment_store


def get_hint_llm(request: Request) -> HintLLM:
    return request.app.state.hint_llm


@router.post("")
async def generate_hint_endpoint(
    payload: HintPayload,
    store: AssignmentStore = Depends(get_assignment_store),
    llm: HintLLM = Depends(get_hint_llm),
):
    try:
        hint = await generate_hint(store, llm, payload.assignment_id, payload.user_query, payload.error)
    except AssignmentNotFound:
        return JSONResponse(status_code=404, content={"success": False, "message": "Assignment not found"})
    except UpstreamUnavailable as e:
        return JSONResponse(
            status_code=503,
            content={"success": False, "message": "Hint service temporarily unavailable", "error": str(e)},
        )
    except Exception as e:
        logger.error(f"Hint generation failed for {payload.assignment_id}: {e}")
        return JSONResponse(
            status_code=500,
            content={"success": False, "message": "Error generating hint", "error": str(e)},
        )

    return {"success": True, "hint": hint}
