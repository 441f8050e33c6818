"""
FastAPI application for the readiness assessment pipeline.

Run with: uvicorn assessment.main:app --reload
"""

from contextlib import asynccontextmanager
import uuid

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from assessment.api.exception_handlers import setup_exception_handlers
from assessment.api.routes import assessment, health, sessions
from assessment.core.config import pipeline_config, settings
from assessment.core.logging import bind_context, clear_context, configure_logging, get_logger
from assessment.llm.oracle import assistant_ids_from_config
from assessment.persistence.database import init_database

configure_logging()
log = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Tag every request with a request_id.

    The id is bound to the logging context for the request's lifetime and
    echoed in the X-Request-ID response header. A caller-supplied header is
    reused so retries of the same turn correlate.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        bind_context(request_id=request_id)
        try:
            response = await call_next(request)
            response.headers[REQUEST_ID_HEADER] = request_id
            return response
        finally:
            clear_context()


def validate_oracle_settings() -> None:
    """
    Fail fast on a misconfigured oracle.

    Raises:
        RuntimeError: If OPENAI_API_KEY is missing, or the assistants provider
            is selected with no assistant id for some stage
    """
    if not settings.openai_api_key:
        raise RuntimeError(
            "Oracle API key missing: OPENAI_API_KEY is required for the "
            f"'{settings.oracle_provider}' provider. Set it in .env file."
        )

    if settings.oracle_provider == "assistants":
        missing = [
            stage
            for stage, assistant_id in assistant_ids_from_config(pipeline_config).items()
            if not assistant_id
        ]
        if missing:
            raise RuntimeError(
                f"No oracle assistant id configured for: {', '.join(missing)}. "
                "Set <STAGE>_ASSISTANT_ID or config/pipeline_config.yaml."
            )

    log.info("oracle_settings_validated", oracle_provider=settings.oracle_provider)


@asynccontextmanager
async def lifespan(app: FastAPI):
    log.info(
        "application_starting",
        debug=settings.debug,
        database_path=str(settings.database_path),
        session_store=settings.session_store_backend,
        oracle_provider=settings.oracle_provider,
    )

    validate_oracle_settings()

    if settings.session_store_backend == "sqlite" or settings.analytics_enabled:
        await init_database()

    log.info("application_started")
    yield
    log.info("application_shutting_down")


app = FastAPI(
    title="Readiness Assessment",
    description="Multi-stage conversational intake for AI readiness assessments",
    version=health.VERSION,
    lifespan=lifespan,
    debug=settings.debug,
)

if settings.debug:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

app.add_middleware(CorrelationIDMiddleware)

setup_exception_handlers(app)

app.include_router(health.router, tags=["system"])
app.include_router(assessment.router)
app.include_router(sessions.router)


@app.get("/")
async def root():
    return {"name": "Readiness Assessment", "version": health.VERSION, "status": "running"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "assessment.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
    )
