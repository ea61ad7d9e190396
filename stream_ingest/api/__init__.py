"""REST API module for the Stream Ingest Pipeline."""

from stream_ingest.api.app import create_app

__all__ = ["create_app"]
