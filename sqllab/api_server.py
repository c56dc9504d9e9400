import os
import logging

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, RedirectResponse

# Import routers
from sqllab.app.routers import hints
from sqllab.app.routers import queries
from sqllab.app.agents.sql_lab.db import AssignmentStore, create_catalog_engine, create_workspace_engine
from sqllab.app.agents.sql_lab.hint_help.hint_agent import HintLLM
from sqllab.app.agents.sql_lab.runner.sandbox_runner import MAX_ROWS, STATEMENT_TIMEOUT_MS, WorkspaceSandbox

load_dotenv()
logging.basicConfig(
    level=os.getenv("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

CORS_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ORIGINS", "http://localhost:5173").split(",")
    if origin.strip()
]


def _validation_message(exc: RequestValidationError) -> str:
    errors = exc.errors()
    if not errors:
        return "Invalid request body"
    first = errors[0]
    ctx_error = (first.get("ctx") or {}).get("error")
    field = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
    message = str(ctx_error) if ctx_error else first.get("msg", "Invalid value")
    return f"{field}: {message}" if field else message


def create_app() -> FastAPI:
    app = FastAPI(
        title="SQL Lab API Server",
        description="Runs learner SQL inside per-workspace sandboxes and serves redacted AI hints.",
    )

    # --- Add CORS Middleware ---
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # --- Startup Event: Build connection pools and clients ---
    @app.on_event("startup")
    async def startup_event():
        engine = create_workspace_engine()
        app.state.engine = engine
        app.state.sandbox = WorkspaceSandbox(
            engine,
            statement_timeout_ms=STATEMENT_TIMEOUT_MS,
            max_rows=MAX_ROWS,
        )
        app.state.catalog_engine = create_catalog_engine()
        app.state.assignment_store = AssignmentStore(app.state.catalog_engine)
        app.state.hint_llm = HintLLM()
        logger.info(f"SQL sandbox ready (pool size {engine.pool.size()}).")

    @app.on_event("shutdown")
    async def shutdown_event():
        for name in ("engine", "catalog_engine"):
            engine = getattr(app.state, name, None)
            if engine is not None:
                engine.dispose()

    # 請求格式錯誤一律回 400 (在 Admission Policy 之前)
    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=400,
            content={"success": False, "message": _validation_message(exc)},
        )

    # --- Root, Health Check ---

    @app.get("/", include_in_schema=False)
    def read_root():
        """
        Redirects the root URL to the API documentation.
        """
        return RedirectResponse(url="/docs")

    @app.get("/health", tags=["System"])
    def health_check():
        return {"status": "ok", "message": "Server is running"}

    app.include_router(queries.router)
    app.include_router(hints.router)

    return app


app = create_app()

# To run this server:
# uvicorn sqllab.api_server:app --reload --port 5000
