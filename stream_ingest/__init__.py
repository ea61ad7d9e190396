"""Stream Ingest Pipeline - Ingest videos and synthesize their metadata."""

__version__ = "0.3.0"
