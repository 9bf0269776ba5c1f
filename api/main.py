"""
ComplianceBot API — Main Application

POST /review            — Review page text against the rulebook
POST /feedback          — Record a human verdict on a reviewed example
POST /feedback/action   — Record a verdict from a chat button action id
GET  /performance       — Per-rule precision / recall / F1
GET  /insights          — Plain-language tuning hints
GET  /report            — Performance summary (structured + text)
GET  /examples/pending  — Examples awaiting feedback
GET  /examples/{id}     — One learning example
GET  /export            — Full learning data export
GET  /rules             — The active rule catalog
GET  /ledger            — Recent review ledger entries
GET  /ledger/verify     — Verify ledger chain integrity
GET  /health            — Health check
"""

from __future__ import annotations

import os
import time
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.requests import Request

from compliancebot import __version__
from compliancebot.auth import auth_enabled, require_api_key
from compliancebot.cache import ReviewCache
from compliancebot.checker import review_page
from compliancebot.config import settings
from compliancebot.errors import (
    ExampleNotFoundError,
    FeedbackAlreadyRecordedError,
    InvalidFeedbackError,
    ReviewError,
    ReviewUnavailableError,
)
from compliancebot.feedback import FeedbackProcessor
from compliancebot.insights import build_performance_report, format_report, generate_insights
from compliancebot.learning import LearningStore
from compliancebot.ledger import ReviewLedger
from compliancebot.llm import LLMProvider
from compliancebot.llm.factory import get_provider
from compliancebot.logging import get_logger, setup_logging
from compliancebot.reviewer import ComplianceReviewer
from compliancebot.rules import RuleCatalog, default_catalog
from compliancebot.schemas.api import (
    ChainVerification,
    ExampleResponse,
    ExportResponse,
    FeedbackActionRequest,
    FeedbackRequest,
    FeedbackResponse,
    HealthResponse,
    InsightsResponse,
    LedgerResponse,
    PendingExamplesResponse,
    PerformanceResponse,
    ReportResponse,
    ReviewRequest,
    ReviewResponse,
    RulesResponse,
)

logger = get_logger("api")


# ============================================================
# STARTUP / SHUTDOWN
# ============================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the learning store and ledger; close them on shutdown."""
    setup_logging()

    if os.getenv("RENDER", "").lower() == "true" and not auth_enabled():
        logger.warning(
            "Running on Render without auth: all endpoints are public. "
            "Set COMPLIANCEBOT_API_KEYS to enable auth."
        )

    app.state.catalog = default_catalog
    app.state.store = LearningStore(settings.LEARNING_DB_PATH).open()
    app.state.ledger = ReviewLedger(settings.LEDGER_DB_PATH).open()
    app.state.cache = ReviewCache()
    if not hasattr(app.state, "llm"):
        app.state.llm = None

    logger.info("ComplianceBot API starting")
    try:
        yield
    finally:
        app.state.store.close()
        app.state.ledger.close()
        logger.info("ComplianceBot API shutting down")


app = FastAPI(
    title="ComplianceBot API",
    description="HSA/FSA marketing compliance review with feedback-driven learning",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGINS.split(",")],
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["X-API-Key", "Content-Type", "Authorization"],
    allow_credentials=False,
)


# ============================================================
# DEPENDENCIES
# ============================================================

def get_store(request: Request) -> LearningStore:
    return request.app.state.store


def get_ledger(request: Request) -> ReviewLedger:
    return request.app.state.ledger


def get_cache(request: Request) -> ReviewCache:
    return request.app.state.cache


def get_catalog(request: Request) -> RuleCatalog:
    return request.app.state.catalog


def get_llm(request: Request) -> LLMProvider:
    """Lazy LLM provider; tests install their own on app.state.llm."""
    if getattr(request.app.state, "llm", None) is None:
        try:
            request.app.state.llm = get_provider(settings.LLM_PROVIDER)
        except ValueError as e:
            raise ReviewUnavailableError(str(e)) from e
    return request.app.state.llm


def get_feedback_processor(
    store: LearningStore = Depends(get_store),
    ledger: ReviewLedger = Depends(get_ledger),
) -> FeedbackProcessor:
    return FeedbackProcessor(store, ledger)


# ============================================================
# ERROR HANDLERS
# ============================================================

@app.exception_handler(ReviewError)
async def review_error_handler(request: Request, exc: ReviewError):
    """A failed review is an explicit error state, never "clean"."""
    return JSONResponse(
        status_code=502,
        content={
            "detail": str(exc),
            "error": "review_failed",
            "error_type": type(exc).__name__,
        },
    )


@app.exception_handler(ExampleNotFoundError)
async def not_found_handler(request: Request, exc: ExampleNotFoundError):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(InvalidFeedbackError)
async def invalid_feedback_handler(request: Request, exc: InvalidFeedbackError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(FeedbackAlreadyRecordedError)
async def already_recorded_handler(request: Request, exc: FeedbackAlreadyRecordedError):
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(Exception)
async def global_error_handler(request: Request, exc: Exception):
    """Catch unhandled exceptions. Return a structured error without internals."""
    logger.error(
        f"Unhandled exception: {type(exc).__name__}",
        extra={"error": str(exc), "path": request.url.path, "method": request.method},
        exc_info=True,
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error. The request could not be completed."},
    )


# ============================================================
# ROUTES
# ============================================================

@app.post("/review", response_model=ReviewResponse)
async def review(
    request: ReviewRequest,
    store: LearningStore = Depends(get_store),
    ledger: ReviewLedger = Depends(get_ledger),
    cache: ReviewCache = Depends(get_cache),
    catalog: RuleCatalog = Depends(get_catalog),
    llm: LLMProvider = Depends(get_llm),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Review page text. Failures surface as 502 with error=review_failed."""
    if request.ticket_id and await cache.check_and_mark(request.ticket_id, request.source_ref):
        logger.info(
            "Review skipped: already reviewed today",
            extra={"source_ref": request.source_ref, "key_id": key_id},
        )
        return {"status": "skipped", "source_ref": request.source_ref}

    reviewer = ComplianceReviewer(llm, catalog=catalog)
    try:
        outcome = await review_page(
            request.text,
            request.source_ref,
            reviewer,
            store,
            ledger=ledger,
            catalog=catalog,
        )
    except Exception:
        # A failed review must not block a retry today
        if request.ticket_id:
            await cache.forget(request.ticket_id, request.source_ref)
        raise

    return {
        "status": "reviewed",
        "source_ref": outcome.source_ref,
        "example_id": outcome.example_id,
        "result": outcome.result.to_dict(),
    }


@app.post("/feedback", response_model=FeedbackResponse)
async def submit_feedback(
    request: FeedbackRequest,
    processor: FeedbackProcessor = Depends(get_feedback_processor),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Record a verdict: correct | incorrect | needs_review."""
    receipt = processor.submit(request.example_id, request.feedback, request.notes)
    return receipt.to_dict()


@app.post("/feedback/action", response_model=FeedbackResponse)
async def submit_feedback_action(
    request: FeedbackActionRequest,
    processor: FeedbackProcessor = Depends(get_feedback_processor),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Record a verdict delivered as a chat button action id."""
    receipt = processor.submit_action(request.action_id, request.example_id, request.notes)
    return receipt.to_dict()


@app.get("/performance", response_model=PerformanceResponse)
async def get_performance(
    store: LearningStore = Depends(get_store),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Per-rule metrics, best F1 first."""
    policies = [p.to_dict() for p in store.get_policy_performance()]
    return {"policies": policies, "total": len(policies)}


@app.get("/insights", response_model=InsightsResponse)
async def get_insights(
    store: LearningStore = Depends(get_store),
    key_id: Optional[str] = Depends(require_api_key),
):
    return {"insights": generate_insights(store.get_policy_performance())}


@app.get("/report", response_model=ReportResponse)
async def get_report(
    top_n: int = Query(3, ge=1, le=50),
    store: LearningStore = Depends(get_store),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Performance summary with a plain-text rendering."""
    report = build_performance_report(store, top_n=top_n)
    body = report.to_dict()
    body["text"] = format_report(report)
    return body


@app.get("/examples/pending", response_model=PendingExamplesResponse)
async def get_pending_examples(
    limit: int = Query(settings.PENDING_LIMIT, ge=1, le=500),
    store: LearningStore = Depends(get_store),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Examples still awaiting feedback, newest first."""
    examples = [e.to_dict() for e in store.get_pending_examples(limit=limit)]
    return {"examples": examples, "total": len(examples)}


@app.get("/examples/{example_id}", response_model=ExampleResponse)
async def get_example(
    example_id: str,
    store: LearningStore = Depends(get_store),
    key_id: Optional[str] = Depends(require_api_key),
):
    return store.get_example(example_id).to_dict()


@app.get("/export", response_model=ExportResponse)
async def export_learning_data(
    store: LearningStore = Depends(get_store),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Everything the learning store holds."""
    return store.export_learning_data()


@app.get("/rules", response_model=RulesResponse)
async def get_rules(
    category: Optional[str] = None,
    catalog: RuleCatalog = Depends(get_catalog),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Return the rule catalog, optionally filtered by category."""
    rules = catalog.by_category(category) if category else list(catalog.rules)
    return {
        "catalog_version": catalog.version,
        "categories": catalog.categories(),
        "total": len(rules),
        "rules": [r.to_dict() for r in rules],
    }


@app.get("/ledger", response_model=LedgerResponse)
async def get_ledger_entries(
    limit: int = Query(20, ge=1, le=100),
    event_type: Optional[str] = None,
    ledger: ReviewLedger = Depends(get_ledger),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Recent ledger entries, newest first."""
    return {
        "entries": ledger.get_recent(limit=limit, event_type=event_type),
        "total_count": ledger.get_count(),
    }


@app.get("/ledger/verify", response_model=ChainVerification)
async def verify_ledger(
    limit: int = Query(100, ge=1, le=1000),
    ledger: ReviewLedger = Depends(get_ledger),
    key_id: Optional[str] = Depends(require_api_key),
):
    """Verify integrity of the ledger chain."""
    return ledger.verify_chain(limit=limit)


@app.get("/health", response_model=HealthResponse)
async def health(
    store: LearningStore = Depends(get_store),
    ledger: ReviewLedger = Depends(get_ledger),
    catalog: RuleCatalog = Depends(get_catalog),
):
    """Health check — no auth required."""
    stats = store.get_stats()
    return {
        "status": "operational",
        "version": __version__,
        "catalog_version": catalog.version,
        "llm_provider": settings.LLM_PROVIDER,
        "rules_loaded": len(catalog),
        "ledger_entries": ledger.get_count(),
        "total_examples": stats["total_examples"],
        "pending_examples": stats["pending_examples"],
        "auth_enabled": auth_enabled(),
    }


# --- Version + Security Headers Middleware ---
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security and version headers to all responses."""
    response = await call_next(request)
    response.headers["X-ComplianceBot-Version"] = __version__
    response.headers["X-Catalog-Version"] = default_catalog.version
    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
    return response


# --- Body Size Limit Middleware ---
_MAX_BODY_BYTES = 1_048_576  # 1 MB


@app.middleware("http")
async def enforce_body_size_limit(request: Request, call_next):
    """Reject requests exceeding 1MB, by Content-Length or actual body."""
    content_length = request.headers.get("content-length")
    if content_length and content_length.isdigit() and int(content_length) > _MAX_BODY_BYTES:
        return JSONResponse(status_code=413, content={"detail": "Request body too large."})

    if request.method in ("POST", "PUT", "PATCH"):
        body = await request.body()
        if len(body) > _MAX_BODY_BYTES:
            return JSONResponse(status_code=413, content={"detail": "Request body too large."})

    return await call_next(request)


# --- Request Logging Middleware ---
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log every API request with method, path, status, duration."""
    path = request.url.path
    if path == "/health":
        return await call_next(request)

    start = time.time()
    response = await call_next(request)
    duration_ms = round((time.time() - start) * 1000, 1)

    logger.info(
        f"{request.method} {path} -> {response.status_code} ({duration_ms}ms)",
        extra={
            "method": request.method,
            "path": path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
        },
    )
    return response
