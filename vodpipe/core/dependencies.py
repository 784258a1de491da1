"""FastAPI dependency providers.

Services are built once at start-up and kept on app.state; tests swap
them through app.dependency_overrides.
"""

from fastapi import Request

from vodpipe.modules.stream.resolver import StreamResolver
from vodpipe.modules.upload.service import UploadService
from vodpipe.modules.video.store import StatusStore


def get_status_store(request: Request) -> StatusStore:
    return request.app.state.status_store


def get_upload_service(request: Request) -> UploadService:
    return request.app.state.upload_service


def get_stream_resolver(request: Request) -> StreamResolver:
    return request.app.state.stream_resolver
