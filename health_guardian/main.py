import logging
from typing import Optional

import httpx
from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from health_guardian.config import Settings, get_settings
from health_guardian.core.pipeline import EnvironmentPipeline
from health_guardian.core.submissions import SessionRegistry
from health_guardian.errors import GENERIC_FETCH_MESSAGE, HealthGuardianError, friendly_message
from health_guardian.models.schemas import (
    AnalysisResponse,
    ErrorInfo,
    ErrorResponse,
    SessionState,
    UserProfile,
)


settings = get_settings()

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Environment Health Guardian API", version="0.1.0")

# --- CORS setup ---
origins = [
    settings.frontend_url,
    "*",
]

app.add_middleware(
    CORSMiddleware,
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
# --- end CORS setup ---

# -----------------------------
# Shared HTTP client + session state
# -----------------------------

sessions = SessionRegistry(max_sessions=settings.max_sessions)


@app.on_event("startup")
async def startup_http_client():
    app.state.http_client = httpx.AsyncClient(timeout=settings.http_timeout)


@app.on_event("shutdown")
async def shutdown_http_client():
    await app.state.http_client.aclose()


async def get_http_client() -> httpx.AsyncClient:
    return app.state.http_client


def get_app_settings() -> Settings:
    return get_settings()


def get_sessions() -> SessionRegistry:
    return sessions


# -----------------------------
# Error envelope
# -----------------------------


def error_info(exc: HealthGuardianError) -> ErrorInfo:
    return ErrorInfo(
        message=friendly_message(exc),
        code=exc.code,
        stage=exc.stage,
        detail=exc.message,
    )


@app.exception_handler(HealthGuardianError)
async def handle_health_guardian_error(request: Request, exc: HealthGuardianError) -> JSONResponse:
    status_code = 504 if getattr(exc, "network", False) else exc.status_code
    body = ErrorResponse(error=error_info(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump(by_alias=True, mode="json"))


def caller_ip(request: Request) -> Optional[str]:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def session_key(x_session_id: Optional[str], request: Request) -> str:
    """Explicit session header, else one session per client address."""
    if x_session_id and x_session_id.strip():
        return x_session_id.strip()
    return f"client:{caller_ip(request) or 'unknown'}"


# -----------------------------
# Analysis endpoint
# -----------------------------


@app.post("/api/analyze", response_model=AnalysisResponse)
async def analyze(
    profile: UserProfile,
    request: Request,
    x_session_id: Optional[str] = Header(None),
    client: httpx.AsyncClient = Depends(get_http_client),
    settings: Settings = Depends(get_app_settings),
    registry: SessionRegistry = Depends(get_sessions),
):
    tracker = registry.tracker(session_key(x_session_id, request))
    submission_id = tracker.begin()

    pipeline = EnvironmentPipeline(
        settings,
        client,
        submission_id=submission_id,
        caller_ip=caller_ip(request),
        on_stage=lambda stage: tracker.update_stage(submission_id, stage),
    )

    try:
        result = await pipeline.run(profile)
    except HealthGuardianError as exc:
        tracker.publish_error(submission_id, error_info(exc))
        raise
    except Exception:
        logger.exception("Submission %s crashed", submission_id)
        tracker.publish_error(
            submission_id,
            ErrorInfo(message=GENERIC_FETCH_MESSAGE, code="INTERNAL_ERROR", stage=pipeline.stage.value),
        )
        raise

    accepted = tracker.publish_result(submission_id, result)
    return AnalysisResponse(**dict(result), superseded=not accepted)


@app.get("/api/sessions/{session_id}", response_model=SessionState)
async def session_state(
    session_id: str,
    registry: SessionRegistry = Depends(get_sessions),
):
    tracker = registry.get(session_id)
    if tracker is None:
        raise HTTPException(status_code=404, detail=f"Unknown session: {session_id}")
    return tracker.state()


# -----------------------------
# Simple health check
# -----------------------------

@app.get("/health")
async def health_check():
    return {"status": "ok"}
