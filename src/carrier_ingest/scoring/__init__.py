from .insurance import get_insurance_tier, insurance_tier, insurance_window, next_alert_tier
from .quality import quality_score, score_record, trust_description, trust_score
from .safety import compute_stability, get_safety_risk_score, rating_change_event, safety_risk_score

__all__ = [
    "compute_stability",
    "get_insurance_tier",
    "get_safety_risk_score",
    "insurance_tier",
    "insurance_window",
    "next_alert_tier",
    "quality_score",
    "rating_change_event",
    "safety_risk_score",
    "score_record",
    "trust_description",
    "trust_score",
]
