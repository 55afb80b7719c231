import logging
from typing import Optional

from fastapi import BackgroundTasks, FastAPI, HTTPException, Query, Request

from carrier_ingest.api.schemas import (
    InsuranceResponse,
    JobRequest,
    JobResponse,
    SafetyResponse,
)
from carrier_ingest.backend.native.http_client import SaferRegistryClient
from carrier_ingest.errors import ValidationError
from carrier_ingest.identity import validate_dot_number
from carrier_ingest.normalize import parse_timestamp, utc_now
from carrier_ingest.scheduler.runner import SyncOrchestrator
from carrier_ingest.scoring.insurance import (
    alert_key,
    insurance_risk_score,
    insurance_window,
    next_alert_tier,
)
from carrier_ingest.scoring.quality import trust_description
from carrier_ingest.scoring.safety import compute_stability, get_safety_risk_score, rating_history
from carrier_ingest.settings import get_settings
from carrier_ingest.storage import SQLiteStore


logger = logging.getLogger("carrier_ingest.api")


def _default_orchestrator() -> SyncOrchestrator:
    settings = get_settings()
    return SyncOrchestrator(SQLiteStore(settings.db_path), SaferRegistryClient(settings), settings)


def _orchestrator(request: Request) -> SyncOrchestrator:
    state = request.app.state
    if state.orchestrator is None:
        state.orchestrator = _default_orchestrator()
    return state.orchestrator


def _now(value: Optional[str]):
    if not value:
        return utc_now()
    parsed = parse_timestamp(value)
    if parsed is None:
        raise HTTPException(status_code=400, detail=f"invalid timestamp: {value}")
    return parsed


def _load_entity(orchestrator: SyncOrchestrator, external_id: str):
    try:
        dot = validate_dot_number(external_id)
    except ValidationError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    record = orchestrator.store.get_entity(dot)
    if record is None:
        raise HTTPException(status_code=404, detail=f"carrier {dot} not found")
    return record


def _get_job(orchestrator: SyncOrchestrator, job_id: str):
    try:
        return orchestrator.get_job_status(job_id)
    except KeyError:
        raise HTTPException(status_code=404, detail=f"job {job_id} not found")


def create_app(orchestrator: Optional[SyncOrchestrator] = None) -> FastAPI:
    app = FastAPI(title="carrier_ingest")
    app.state.orchestrator = orchestrator

    @app.get("/health")
    def health():
        return {"status": "ok"}

    @app.post("/api/jobs", response_model=JobResponse)
    async def create_job(req: JobRequest, request: Request, background: BackgroundTasks):
        orch = _orchestrator(request)
        try:
            job_id = orch.start_job(
                req.job_type,
                req.limit,
                req.targets,
                strategy=req.strategy,
                start_dot=req.start_dot,
                seed=req.seed,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc))
        job = orch.get_job_status(job_id)
        payload = job.to_dict()
        if req.run:
            background.add_task(orch.run_job, job_id)
        logger.info("job %s accepted (%s, %d targets)", job_id, job.job_type, len(job.targets))
        return payload

    @app.get("/api/jobs", response_model=list[JobResponse])
    def list_jobs(request: Request):
        return [job.to_dict() for job in _orchestrator(request).list_jobs()]

    @app.get("/api/jobs/{job_id}", response_model=JobResponse)
    def get_job(job_id: str, request: Request):
        return _get_job(_orchestrator(request), job_id).to_dict()

    @app.post("/api/jobs/{job_id}/cancel", response_model=JobResponse)
    def cancel_job(job_id: str, request: Request):
        orch = _orchestrator(request)
        _get_job(orch, job_id)
        return orch.cancel_job(job_id).to_dict()

    @app.get("/api/carriers/{external_id}")
    def get_carrier(external_id: str, request: Request):
        record = _load_entity(_orchestrator(request), external_id)
        data = record.to_dict()
        data["trust_description"] = trust_description(record.trust_score)
        return data

    @app.get("/api/carriers/{external_id}/insurance", response_model=InsuranceResponse)
    def get_carrier_insurance(
        external_id: str,
        request: Request,
        now: Optional[str] = None,
        sent: Optional[str] = Query(default=None, description="Comma-separated tiers already alerted"),
    ):
        record = _load_entity(_orchestrator(request), external_id)
        at = _now(now)
        window = insurance_window(record, at)
        verified_at = parse_timestamp(record.verification_date)
        verification_age = (at - verified_at).days if verified_at else None
        sent_tiers = [t.strip() for t in (sent or "").split(",") if t.strip()]
        tier = next_alert_tier(record.insurance_expiry_date, at, sent_tiers)
        return {
            "external_id": record.external_id,
            **window.to_dict(),
            "next_alert_tier": tier,
            "alert_key": alert_key(record.external_id, tier, record.insurance_expiry_date)
            if tier
            else None,
            "risk_score": insurance_risk_score(record.insurance_expiry_date, verification_age, at),
        }

    @app.get("/api/carriers/{external_id}/safety", response_model=SafetyResponse)
    def get_carrier_safety(external_id: str, request: Request, now: Optional[str] = None):
        orch = _orchestrator(request)
        record = _load_entity(orch, external_id)
        at = _now(now)
        events = orch.store.list_rating_events(record.external_id)
        return {
            "external_id": record.external_id,
            "safety_rating": record.safety_rating,
            "risk_score": get_safety_risk_score(record, events, at),
            "stability": compute_stability(events, at).to_dict(),
            "history": rating_history(events, at),
        }

    return app


app = create_app()
