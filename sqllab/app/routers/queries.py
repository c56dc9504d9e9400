from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from typing import Optional
import logging
from pydantic import AliasChoices, BaseModel, Field, StrictStr, field_validator
from starlette.concurrency import run_in_threadpool

from sqllab.app.agents.sql_lab.errors import (
    AdmissionRejected, ExecutionFault, InvalidWorkspaceError, UpstreamUnavailable
)
from sqllab.app.agents.sql_lab.guard.policy import ensure_admitted
from sqllab.app.agents.sql_lab.models import SqlSubmission
from sqllab.app.agents.sql_lab.runner.sandbox_runner import WorkspaceSandbox, sanitize_schema_name

router = APIRouter(prefix="/api/queries", tags=["SQL Sandbox"])
logger = logging.getLogger(__name__)

MAX_SQL_CHARS = 20000


# ==========================================
# Pydantic Models
# ==========================================

class QueryPayload(BaseModel):
    # "sql" 與 "query" 兩種欄位名稱都接受
    sql: Optional[StrictStr] = Field(default=None, max_length=MAX_SQL_CHARS)
    query: Optional[StrictStr] = Field(default=None, max_length=MAX_SQL_CHARS)
    workspace_id: StrictStr = Field(
        validation_alias=AliasChoices("workspaceId", "workspace_id", "schema")
    )

    @field_validator("workspace_id")
    @classmethod
    def workspace_must_be_identifier(cls, value: str) -> str:
        if not sanitize_schema_name(value):
            raise ValueError("Workspace must contain letters, digits or underscores")
        return value

    @property
    def sql_text(self) -> Optional[str]:
        return self.sql or self.query


def get_sandbox(request: Request) -> WorkspaceSandbox:
    return request.app.state.sandbox


def _failure(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


# ==========================================
# Endpoints
# ==========================================

@router.post("/execute")
async def execute_query(
    payload: QueryPayload,
    sandbox: WorkspaceSandbox = Depends(get_sandbox),
):
    if not payload.sql_text:
        return _failure(400, 'SQL query is required. Use "sql" or "query" field in request body.')

    submission = SqlSubmission(text=payload.sql_text, workspace_id=payload.workspace_id)

    try:
        # 1. Admission Policy (被擋下時完全不碰資料庫)
        ensure_admitted(submission.text)
        # 2. Execute inside the workspace sandbox
        result = await run_in_threadpool(sandbox.execute, submission.text, submission.workspace_id)
    except AdmissionRejected as e:
        logger.info(f"Query rejected for workspace {submission.workspace_id}: {e.verdict.reason_code.value}")
        return JSONResponse(status_code=400, content=e.verdict.as_dict())
    except InvalidWorkspaceError as e:
        return _failure(400, str(e))
    except ExecutionFault as e:
        return _failure(400, e.engine_message)
    except UpstreamUnavailable as e:
        return _failure(503, str(e))
    except Exception as e:
        logger.error(f"Query execution failed for workspace {submission.workspace_id}: {e}")
        return _failure(500, "Error executing query")

    return {"success": True, **result.as_dict()}
