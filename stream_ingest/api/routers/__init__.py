"""API routers module."""

from stream_ingest.api.routers.analysis import router as analysis_router
from stream_ingest.api.routers.captions import router as captions_router
from stream_ingest.api.routers.health import router as health_router
from stream_ingest.api.routers.uploads import router as uploads_router
from stream_ingest.api.routers.videos import router as videos_router
from stream_ingest.api.routers.webhooks import router as webhooks_router

__all__ = [
    "analysis_router",
    "captions_router",
    "health_router",
    "uploads_router",
    "videos_router",
    "webhooks_router",
]
