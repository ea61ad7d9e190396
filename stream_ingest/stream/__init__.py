"""Remote video store integration."""

from stream_ingest.stream.client import StreamClient, encode_upload_metadata
from stream_ingest.stream.signing import (
    SignedTokenIssuer,
    get_token_issuer,
    load_private_key,
    reset_token_issuer,
)
from stream_ingest.stream.status import StatusReporter
from stream_ingest.stream.uploader import UploadOrchestrator

__all__ = [
    "StreamClient",
    "encode_upload_metadata",
    "SignedTokenIssuer",
    "get_token_issuer",
    "load_private_key",
    "reset_token_issuer",
    "StatusReporter",
    "UploadOrchestrator",
]
