"""
FastAPI application and RPC layer.

Each endpoint is one request/response operation of the analysis service;
the scraper feeds ``/enqueue`` and ``/prioritize``, the presentation
layer polls ``/analysis``, and the options page uses the config and
debug endpoints.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import APIRouter, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from feedguard.config import LOG_FORMAT, LOG_LEVEL
from feedguard.core.context import PipelineContext
from feedguard.core.lexicon import LexiconStore
from feedguard.errors import FeedGuardError
from feedguard.schemas import (
    AckResponse,
    AnalysisResponse,
    ConfigResponse,
    EnqueueRequest,
    EnqueueResponse,
    IdsRequest,
    LexiconSummaryResponse,
    LocalClassifyRequest,
    LocalClassifyResponse,
    PingResponse,
    PrioritizeResponse,
    SetConfigRequest,
    StatsResponse,
    TickResponse,
)
from feedguard.services.config_store import ConfigStore
from feedguard.services.remote import RemoteClassifier
from feedguard.settings import settings
from feedguard.sources.timeline import parse_posts
from feedguard.utils import now_utc, sanitize_credential

logging.basicConfig(level=LOG_LEVEL, format=LOG_FORMAT)
logger = logging.getLogger("uvicorn")

router = APIRouter()


def build_default_context() -> PipelineContext:
    """Context wired from process settings (env / .env)."""
    return PipelineContext(
        lexicon_store=LexiconStore(settings.LEXICON_PATH),
        config_store=ConfigStore(settings.CONFIG_PATH),
        remote=RemoteClassifier(
            base_url=settings.OPENAI_BASE_URL,
            timeout=settings.REMOTE_TIMEOUT_SECONDS,
        ),
    )


def _context(request: Request) -> PipelineContext:
    return request.app.state.context


def _error(status_code: int, e: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"ok": False, "error": str(e)})


def _config_response(ctx: PipelineContext) -> ConfigResponse:
    return ConfigResponse(
        config=ctx.public_config(),
        hasCredential=bool(sanitize_credential(ctx.config.remote.credential)),
    )


@router.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "ok",
        "as_of": now_utc().isoformat(),
        "service": "feedguard",
    }


@router.get("/config", response_model=ConfigResponse)
async def get_config(request: Request):
    return _config_response(_context(request))


@router.post("/config", response_model=ConfigResponse)
async def set_config(body: SetConfigRequest, request: Request):
    ctx = _context(request)
    try:
        ctx.update_config(body.patch)
    except FeedGuardError as e:
        logger.error(f"Config update failed: {e}")
        return _error(500, e)
    return _config_response(ctx)


@router.get("/ping", response_model=PingResponse)
async def ping(request: Request):
    cfg = _context(request).config
    return PingResponse(enabled=cfg.enabled, analysisMode=cfg.analysis_mode)


@router.post("/reset", response_model=AckResponse)
async def reset(request: Request):
    _context(request).reset()
    return AckResponse()


@router.post("/enqueue", response_model=EnqueueResponse)
async def enqueue(body: EnqueueRequest, request: Request):
    """
    Accept scraped posts.

    Malformed payloads are dropped and counted as ``invalid``; they never
    fail the request.
    """
    posts, invalid = parse_posts(body.posts)
    stats = _context(request).enqueue(posts)
    return EnqueueResponse(
        added=stats.added,
        deduped=stats.deduped,
        invalid=invalid + stats.invalid,
        dropped=stats.dropped,
        pendingCount=stats.pending_count,
    )


@router.post("/prioritize", response_model=PrioritizeResponse)
async def prioritize(body: IdsRequest, request: Request):
    return PrioritizeResponse(pendingCount=_context(request).prioritize(body.ids))


@router.post("/analysis", response_model=AnalysisResponse)
async def get_analysis(body: IdsRequest, request: Request):
    results = _context(request).get_analysis(body.ids)
    return AnalysisResponse(results={i: r.to_dict() for i, r in results.items()})


@router.get("/debug/lexicon", response_model=LexiconSummaryResponse)
async def debug_lexicon(request: Request):
    store = _context(request).lexicon_store
    await store.load()
    return LexiconSummaryResponse(summary=store.summary())


@router.post("/debug/lexicon/reload", response_model=LexiconSummaryResponse)
async def reload_lexicon(request: Request):
    store = _context(request).lexicon_store
    await store.reload()
    return LexiconSummaryResponse(summary=store.summary())


@router.post("/debug/classify", response_model=LocalClassifyResponse)
async def debug_local_classify(body: LocalClassifyRequest, request: Request):
    ctx = _context(request)
    await ctx.lexicon_store.load()
    return LocalClassifyResponse(analysis=ctx.classify_local(body.text).to_dict())


@router.get("/stats", response_model=StatsResponse)
async def stats(request: Request):
    return StatsResponse(**_context(request).stats())


@router.post("/tick", response_model=TickResponse)
async def tick(request: Request):
    return TickResponse(**await _context(request).tick())


def create_app(context: Optional[PipelineContext] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        context: Pre-built pipeline context (tests); defaults to one wired
            from process settings

    Returns:
        Configured FastAPI app
    """
    ctx = context or build_default_context()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        await ctx.init()
        logger.info("Analysis service ready (lexicon ready: %s)", ctx.lexicon_store.ready)
        yield
        await ctx.shutdown()

    app = FastAPI(
        title="Timeline Risk Analysis API",
        version="0.1.0",
        description="Queues scraped timeline posts and classifies their risk",
        lifespan=lifespan,
    )
    app.state.context = ctx

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.include_router(router)
    return app


app = create_app()


if __name__ == "__main__":
    # For development
    import uvicorn
    uvicorn.run("feedguard.main:app", host="0.0.0.0", port=settings.PORT, reload=True)
