"""FastAPI main application - StudyMatch auto-match trigger API"""

import secrets
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from studymatch.config import settings
from studymatch.errors import CycleAbortedError
from studymatch.logging_setup import configure_logging
from studymatch.pipeline.orchestrator import CycleOrchestrator
from studymatch.storage.supabase_store import build_supabase_stores


# ============================================
# Pydantic Models
# ============================================

class CycleResponse(BaseModel):
    """Response for a completed cycle"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    matches_created: int = Field(0, alias="matchesCreated")
    errors: Optional[list[str]] = None
    message: Optional[str] = None


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str = "1.0.0"
    opener_generation: str = "template"


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Configure logging on startup. The orchestrator is built lazily on the
    first cycle so the API can start (and answer health checks) before
    Supabase is configured.
    """
    configure_logging(settings.log_level)
    logger.info("Starting up StudyMatch API...")
    yield
    logger.info("Shutting down StudyMatch API...")


# ============================================
# FastAPI App
# ============================================

app = FastAPI(
    title="StudyMatch API",
    description="Periodic study-partner auto-matching",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================
# Dependencies
# ============================================

def get_orchestrator(request: Request) -> CycleOrchestrator:
    """Orchestrator bound to the Supabase stores (built once per process)"""
    orchestrator = getattr(request.app.state, "orchestrator", None)
    if orchestrator is None:
        try:
            stores = build_supabase_stores(with_lock=settings.cycle_lock_minutes > 0)
            orchestrator = CycleOrchestrator.from_settings(stores, settings)
        except Exception as e:
            logger.error(f"Could not set up the auto-match cycle: {e}")
            raise CycleAbortedError(str(e), cause=e) from e
        request.app.state.orchestrator = orchestrator
    return orchestrator


def verify_cycle_token(authorization: Optional[str] = Header(None)) -> None:
    """Require ``Authorization: Bearer <token>``; compare when a token is configured"""
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization[len("bearer "):].strip()
    if not token:
        raise HTTPException(status_code=401, detail="Missing bearer token")
    if settings.cycle_auth_token and not secrets.compare_digest(token, settings.cycle_auth_token):
        raise HTTPException(status_code=401, detail="Invalid bearer token")


# ============================================
# Exception Handlers
# ============================================

@app.exception_handler(CycleAbortedError)
async def cycle_aborted_handler(request: Request, exc: CycleAbortedError):
    """Fatal cycle errors raised outside the handler (e.g. store setup)"""
    return JSONResponse(status_code=500, content={"success": False, "error": str(exc)})


# ============================================
# Endpoints
# ============================================

@app.get("/health", response_model=HealthResponse, tags=["System"])
async def health_check():
    """Health check endpoint"""
    return HealthResponse(
        status="ok",
        opener_generation="external" if settings.has_opener_credentials else "template",
    )


@app.post(
    "/cycle",
    response_model=CycleResponse,
    response_model_exclude_none=True,
    tags=["Matching"],
    dependencies=[Depends(verify_cycle_token)],
)
def run_cycle(orchestrator: CycleOrchestrator = Depends(get_orchestrator)):
    """
    Run one auto-match cycle

    The body is ignored (cron sends ``{}``). Per-pair failures are reported
    in ``errors`` with a 200; only a fatal failure returns 500.
    """
    try:
        summary = orchestrator.run()
    except CycleAbortedError as e:
        return JSONResponse(status_code=500, content={"success": False, "error": str(e)})
    except Exception as e:
        logger.error(f"Auto-match error: {e}")
        return JSONResponse(status_code=500, content={"success": False, "error": str(e) or "Unknown error"})

    return CycleResponse(
        success=True,
        matches_created=summary.matches_created,
        errors=summary.errors or None,
        message=summary.message,
    )


# ============================================
# Run with: uvicorn studymatch.api.main:app --reload
# ============================================
