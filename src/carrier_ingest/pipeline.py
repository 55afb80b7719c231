"""Per-identifier pipeline: extract -> classify -> score -> history -> persist.

Every step here is synchronous; the only awaits in a job are the fetch and
the pacing/backoff sleeps owned by the orchestrator.
"""

from dataclasses import dataclass
from typing import Optional

from carrier_ingest.backend.native.parsers import parse_snapshot
from carrier_ingest.classify import classify_record, filter_reason
from carrier_ingest.feature_flags import get_flags
from carrier_ingest.normalize import parse_timestamp, utc_now
from carrier_ingest.schema.records import DataSource, EntityRecord, SafetyRatingEvent
from carrier_ingest.scoring.quality import score_record
from carrier_ingest.scoring.safety import rating_change_event
from carrier_ingest.storage import EntityStore


@dataclass
class IngestOutcome:
    external_id: str
    record: EntityRecord
    stored: bool
    rating_event: Optional[SafetyRatingEvent] = None
    skipped_reason: Optional[str] = None

    def to_dict(self):
        return {
            "external_id": self.external_id,
            "legal_name": self.record.legal_name,
            "stored": self.stored,
            "rating_event": self.rating_event.to_dict() if self.rating_event else None,
            "skipped_reason": self.skipped_reason,
        }


def build_record(html: str, external_id: str, report_count: int = 0) -> EntityRecord:
    """Pure: the same markup always yields the same record."""
    record = parse_snapshot(html, external_id)
    record.is_carrier_entity = classify_record(record)
    return score_record(record, report_count)


def ingest_markup(
    store: EntityStore,
    html: str,
    external_id: str,
    now=None,
    skip_non_carriers: Optional[bool] = None,
) -> IngestOutcome:
    if skip_non_carriers is None:
        skip_non_carriers = get_flags().skip_non_carriers
    record = build_record(html, external_id)
    if not record.is_carrier_entity and skip_non_carriers:
        return IngestOutcome(
            external_id=external_id,
            record=record,
            stored=False,
            skipped_reason=filter_reason(record.entity_type),
        )

    observed_at = (parse_timestamp(now) or utc_now()).replace(microsecond=0).isoformat()
    event = rating_change_event(
        external_id,
        store.list_rating_events(external_id),
        record.safety_rating,
        observed_at,
        DataSource.parse(record.data_source).value,
    )
    if event is not None:
        store.append_rating_event(event)
    store.upsert_entity(record, synced_at=observed_at)
    return IngestOutcome(
        external_id=external_id,
        record=record,
        stored=True,
        rating_event=event,
    )
