"""FastAPI application factory and route setup for uploadgate."""

import asyncio
import logging
import secrets
import time
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, Request, Response
from fastapi.responses import JSONResponse

from uploadgate import __version__
from uploadgate.config import UploadGateConfig
from uploadgate.errors import InternalError, UploadError
from uploadgate.handlers.upload import UploadHandler
from uploadgate.logging_config import bind_request_id, reset_request_id
from uploadgate.storage.backend import MultipartStore
from uploadgate.uploads.orchestrator import UploadOrchestrator
from uploadgate.uploads.registry import SessionRegistry

logger = logging.getLogger(__name__)

# Module-level singleton so multiple create_app() calls (e.g. in tests)
# don't re-register the same Prometheus collectors in the global registry.
_instrumentator = None


def _get_instrumentator():
    global _instrumentator
    if _instrumentator is None:
        from prometheus_fastapi_instrumentator import Instrumentator

        _instrumentator = Instrumentator(
            should_instrument_requests_inprogress=True,
            excluded_handlers=["/metrics"],
        )
    return _instrumentator


# ---------------------------------------------------------------------------
# Application factory
# ---------------------------------------------------------------------------


def create_app(config: UploadGateConfig, store: MultipartStore | None = None) -> FastAPI:
    """Create and configure the uploadgate FastAPI application.

    The store, session registry and orchestrator are built here and placed
    on ``app.state``; the registry is owned by the orchestrator and shared
    with nothing else. The lifespan hook initializes and closes the store
    and runs the idle-session sweep when a TTL is configured.

    Args:
        config: The loaded uploadgate configuration.
        store: Optional store instance; built from ``config.storage`` if omitted.

    Returns:
        A configured FastAPI application ready to run.
    """
    if store is None:
        store = _create_store(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan hook: initialize the store, start and stop the reaper."""
        await store.init()
        logger.info("Object store initialized: %s", config.storage.backend)

        reaper = None
        ttl = config.uploads.session_ttl_seconds
        if ttl > 0:
            reaper = asyncio.create_task(
                _reap_periodically(
                    app.state.orchestrator, ttl, config.uploads.reap_interval_seconds
                )
            )
            logger.info("Expiring upload sessions idle for more than %.0fs", ttl)

        yield

        if reaper is not None:
            reaper.cancel()
            try:
                await reaper
            except asyncio.CancelledError:
                pass
        await store.close()
        logger.info("Object store closed (%d sessions dropped)", len(app.state.registry))

    app = FastAPI(
        title="uploadgate",
        version=__version__,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
    )
    app.state.config = config
    app.state.store = store
    app.state.registry = SessionRegistry(store, config.uploads.store_timeout_seconds)
    app.state.orchestrator = UploadOrchestrator(
        app.state.registry,
        store,
        store_timeout=config.uploads.store_timeout_seconds,
        max_parts=config.uploads.max_parts,
        max_key_bytes=config.uploads.max_key_bytes,
        retain_incomplete=config.uploads.retain_incomplete,
        abort_discarded=config.uploads.abort_discarded,
    )

    _register_exception_handlers(app)
    _register_middleware(app, config)

    if config.observability.metrics:
        import uploadgate.metrics as _metrics

        _metrics.init_metrics()
        _metrics.track_active_sessions(lambda: len(app.state.registry))
        _get_instrumentator().instrument(app, metric_namespace="uploadgate").expose(
            app, endpoint="/metrics"
        )

    _setup_routes(app)

    return app


def _create_store(config: UploadGateConfig) -> MultipartStore:
    """Build the store named by ``storage.backend`` (not yet initialized).

    Raises:
        ValueError: If the backend is unknown or its settings are incomplete.
    """
    backend = config.storage.backend
    if backend == "memory":
        from uploadgate.storage.memory import MemoryMultipartStore as store_cls
    elif backend == "aws":
        from uploadgate.storage.aws import AWSMultipartStore as store_cls
    else:
        raise ValueError(f"Unknown storage backend: {backend!r} (expected 'aws' or 'memory')")
    return store_cls.from_config(config.storage)


async def _reap_periodically(
    orchestrator: UploadOrchestrator, ttl: float, interval: float
) -> None:
    """Background task: expire idle sessions every ``interval`` seconds."""
    while True:
        await asyncio.sleep(interval)
        try:
            await orchestrator.reap_expired(ttl)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception("Upload session sweep failed")


# ---------------------------------------------------------------------------
# Exception handlers
# ---------------------------------------------------------------------------


def _register_exception_handlers(app: FastAPI) -> None:
    """Register exception handlers on the FastAPI app."""

    @app.exception_handler(UploadError)
    async def upload_error_handler(request: Request, exc: UploadError) -> Response:
        """Render UploadError exceptions as JSON error bodies."""
        return JSONResponse(exc.to_dict(), status_code=exc.http_status)

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> Response:
        """Catch unexpected exceptions and return InternalError."""
        logger.exception("Unhandled exception in request handler")
        error = InternalError("We encountered an internal error. Please try again.")
        return JSONResponse(error.to_dict(), status_code=error.http_status)


# ---------------------------------------------------------------------------
# Middleware
# ---------------------------------------------------------------------------


def _register_middleware(app: FastAPI, config: UploadGateConfig) -> None:
    """Register the request-id / access-log middleware on the FastAPI app."""

    # Paths to suppress from per-request logging
    _QUIET_PATHS = {"/metrics", "/health-check"}

    metrics_enabled = config.observability.metrics

    @app.middleware("http")
    async def request_context_middleware(request: Request, call_next) -> Response:
        """Tag every response with ``X-Request-ID`` and log it.

        The id is bound to the logging context for the duration of the
        request, so log lines from the upload core carry it too.

        When metrics are enabled, also increments the request/response byte
        counters from the Content-Length headers.
        """
        request_id = secrets.token_hex(8)
        request.state.request_id = request_id
        token = bind_request_id(request_id)
        start = time.monotonic()

        try:
            response = await call_next(request)
        finally:
            reset_request_id(token)

        duration_ms = round((time.monotonic() - start) * 1000, 2)
        response.headers["X-Request-ID"] = request_id

        if metrics_enabled:
            import uploadgate.metrics as _m

            req_size = _content_length(request.headers.get("content-length"))
            if req_size > 0 and _m.bytes_received_total is not None:
                _m.bytes_received_total.inc(req_size)
            resp_size = _content_length(response.headers.get("content-length"))
            if resp_size > 0 and _m.bytes_sent_total is not None:
                _m.bytes_sent_total.inc(resp_size)

        if request.url.path not in _QUIET_PATHS:
            logger.info(
                "%s %s %d %.2fms",
                request.method,
                request.url.path,
                response.status_code,
                duration_ms,
                extra={
                    "method": request.method,
                    "path": request.url.path,
                    "status": response.status_code,
                    "duration_ms": duration_ms,
                    "request_id": request_id,
                },
            )

        return response


def _content_length(value: str | None) -> int:
    if not value:
        return 0
    try:
        return int(value)
    except ValueError:
        return 0


# ---------------------------------------------------------------------------
# Route handlers
# ---------------------------------------------------------------------------


def _setup_routes(app: FastAPI) -> None:
    """Register the upload and health routes on the application.

    Args:
        app: The FastAPI application to attach routes to.
    """
    upload_handler = UploadHandler(app)

    @app.get("/health-check")
    async def health_check() -> Response:
        """Return liveness status and the current time (RFC 3339)."""
        now = datetime.now(timezone.utc).isoformat(timespec="seconds")
        return JSONResponse({"status": "ok", "time": now})

    @app.post("/upload/initiate")
    async def handle_initiate(request: Request) -> Response:
        return await upload_handler.initiate_upload(request)

    @app.post("/upload/part")
    async def handle_part(request: Request) -> Response:
        return await upload_handler.upload_part(request)

    @app.post("/upload/complete")
    async def handle_complete(request: Request) -> Response:
        return await upload_handler.complete_upload(request)

    @app.post("/upload/abort")
    async def handle_abort(request: Request) -> Response:
        return await upload_handler.abort_upload(request)
