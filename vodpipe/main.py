"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from vodpipe.core.config import settings
from vodpipe.core.database import dispose_engine, init_models
from vodpipe.core.logging import setup_logging
from vodpipe.core.metrics import get_content_type, get_metrics, set_app_info
from vodpipe.core.middleware import (
    CorrelationIdMiddleware,
    MetricsMiddleware,
    RequestLoggingMiddleware,
    TracingMiddleware,
)
from vodpipe.core.tracing import setup_tracing, shutdown_tracing
from vodpipe.modules.job.queue import LocalWorkQueue, create_work_queue
from vodpipe.modules.stream.resolver import StreamResolver
from vodpipe.modules.stream.router import router as stream_router
from vodpipe.modules.transcoding.worker import register_transcode_handler
from vodpipe.modules.upload.assembler import ChunkAssembler
from vodpipe.modules.upload.router import router as upload_router
from vodpipe.modules.upload.service import UploadService
from vodpipe.modules.video.router import router as video_router
from vodpipe.modules.video.store import create_status_store

logger = logging.getLogger(__name__)

ENVIRONMENT = "development" if settings.DEBUG else "production"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the pipeline services and tear them down on shutdown."""
    for directory in (settings.chunks_dir, settings.final_dir, settings.hls_dir, settings.thumbnails_dir):
        directory.mkdir(parents=True, exist_ok=True)

    if settings.STATUS_STORE_BACKEND.lower() == "database":
        await init_models()

    store = create_status_store(settings)
    queue = create_work_queue(settings)
    if isinstance(queue, LocalWorkQueue):
        # No external worker: this process consumes its own queue
        register_transcode_handler(queue, store, settings)
        await queue.start()

    app.state.status_store = store
    app.state.work_queue = queue
    app.state.upload_service = UploadService(
        store=store,
        assembler=ChunkAssembler(settings.chunks_dir, settings.final_dir),
        queue=queue,
    )
    app.state.stream_resolver = StreamResolver(
        settings.hls_dir,
        manifest_max_age=settings.MANIFEST_CACHE_MAX_AGE,
        segment_max_age=settings.SEGMENT_CACHE_MAX_AGE,
    )
    logger.info(
        "Application started",
        extra={"store": settings.STATUS_STORE_BACKEND, "queue": settings.QUEUE_BACKEND},
    )

    yield

    await queue.stop()
    await dispose_engine()
    shutdown_tracing()


app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description="""
## Video-on-demand ingest and HLS delivery API

* **Upload** - chunked upload sessions, merge into one source file
* **Videos** - lifecycle status of each upload (uploaded, merging, transcoding, ready, failed)
* **Stream** - master manifests, variant playlists and segments
    """,
    lifespan=lifespan,
    openapi_tags=[
        {"name": "health", "description": "Health check endpoints"},
        {"name": "upload", "description": "Chunked upload - init, chunk, merge"},
        {"name": "videos", "description": "Video lifecycle status"},
        {"name": "stream", "description": "HLS manifest and segment delivery"},
    ],
)

# Set up logging with correlation IDs
setup_logging(
    level="DEBUG" if settings.DEBUG else settings.LOG_LEVEL,
    json_format=settings.LOG_JSON,
    include_stack_trace=True,
)

# Set up distributed tracing
setup_tracing(
    service_name=settings.PROJECT_NAME,
    service_version=settings.VERSION,
    environment=ENVIRONMENT,
    otlp_endpoint=settings.OTLP_ENDPOINT,
    enable_console_export=settings.DEBUG,
)

# Set application info for metrics
set_app_info(version=settings.VERSION, environment=ENVIRONMENT)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(TracingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(MetricsMiddleware)


@app.get("/health", tags=["health"])
async def health_check() -> dict[str, str]:
    """Health check endpoint.

    Returns:
        dict: Health status with "healthy" value.
    """
    return {"status": "healthy"}


@app.get("/metrics", include_in_schema=False)
async def metrics() -> Response:
    """Prometheus metrics endpoint."""
    return Response(content=get_metrics(), media_type=get_content_type())


# Include routers
app.include_router(upload_router)
app.include_router(video_router)
app.include_router(stream_router)

app.mount(
    "/thumbnails",
    StaticFiles(directory=str(settings.thumbnails_dir), check_dir=False),
    name="thumbnails",
)
