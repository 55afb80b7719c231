"""Package initializer for `carrier_ingest`."""

from .pipeline import build_record, ingest_markup
from .schema.records import EntityRecord
from .scheduler.runner import SyncOrchestrator

__all__ = ["EntityRecord", "SyncOrchestrator", "build_record", "ingest_markup"]
