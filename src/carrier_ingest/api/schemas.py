from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class JobRequest(BaseModel):
    job_type: str = "daily"
    limit: Optional[int] = None
    targets: Optional[List[str]] = None
    strategy: Optional[str] = None
    start_dot: Optional[str] = None
    seed: Optional[int] = None
    run: bool = True


class JobError(BaseModel):
    external_id: str
    error: str
    kind: str


class JobResponse(BaseModel):
    id: str
    job_type: str
    status: str
    targets: List[str] = Field(default_factory=list)
    processed: int = 0
    updated: int = 0
    failed: int = 0
    skipped: int = 0
    discovered: int = 0
    cancelled: bool = False
    success_rate: int = 0
    errors: List[JobError] = Field(default_factory=list)
    created_at: str
    started_at: Optional[str] = None
    completed_at: Optional[str] = None
    limit: Optional[int] = None
    params: Dict[str, Any] = Field(default_factory=dict)


class InsuranceResponse(BaseModel):
    external_id: str
    expiry_date: Optional[str] = None
    effective_date: Optional[str] = None
    days_until_expiry: Optional[int] = None
    current_tier: str
    next_alert_tier: Optional[str] = None
    alert_key: Optional[str] = None
    risk_score: int


class StabilityResponse(BaseModel):
    stability_score: int
    trend: str
    change_count: int
    last_change_date: Optional[str] = None


class SafetyResponse(BaseModel):
    external_id: str
    safety_rating: Optional[str] = None
    risk_score: int
    stability: StabilityResponse
    history: List[Dict[str, Any]] = Field(default_factory=list)
