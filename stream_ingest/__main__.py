"""Entry point for running the package as a module."""

from stream_ingest.cli import app

if __name__ == "__main__":
    app()
