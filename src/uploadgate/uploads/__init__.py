"""Upload session tracking: part ledger, session registry, orchestrator."""

from uploadgate.uploads.models import (
    AbortRequest,
    CompleteRequest,
    InitiateRequest,
    PartInfo,
    PartUploadRequest,
)
from uploadgate.uploads.ledger import PartLedger, UploadSession
from uploadgate.uploads.registry import SessionRegistry
from uploadgate.uploads.orchestrator import UploadOrchestrator

__all__ = [
    "AbortRequest",
    "CompleteRequest",
    "InitiateRequest",
    "PartInfo",
    "PartLedger",
    "PartUploadRequest",
    "SessionRegistry",
    "UploadOrchestrator",
    "UploadSession",
]
