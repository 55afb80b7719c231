from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


STATUS_PENDING = "pending"
STATUS_RUNNING = "running"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})


@dataclass
class SyncJob:
    id: str
    job_type: str
    created_at: str
    status: str = STATUS_PENDING
    targets: List[str] = field(default_factory=list)
    processed: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    cancelled: bool = False
    errors: List[Dict[str, Any]] = field(default_factory=list)
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    limit: Optional[int] = None
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def discovered(self) -> int:
        return self.updated if self.job_type == "discovery" else 0

    @property
    def success_rate(self) -> int:
        if not self.processed:
            return 0
        return round(100 * self.updated / self.processed)

    def record_error(self, external_id: str, error: Exception) -> None:
        self.errors.append(
            {
                "external_id": external_id,
                "error": str(error),
                "kind": type(error).__name__,
            }
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "job_type": self.job_type,
            "status": self.status,
            "targets": list(self.targets),
            "processed": self.processed,
            "updated": self.updated,
            "failed": self.failed,
            "skipped": self.skipped,
            "discovered": self.discovered,
            "cancelled": self.cancelled,
            "success_rate": self.success_rate,
            "errors": list(self.errors),
            "created_at": self.created_at,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "limit": self.limit,
            "params": dict(self.params),
        }
