"""
Policy decision engine.

A pure classification of (risk score, filter matches, policy) into a
disposition. Precedence, first hit wins:

    1. block filter match            -> blocked
    2. score >= block threshold      -> blocked
    3. quarantine match / threshold  -> quarantined
    4. score in the suspicious band  -> suspicious
    5. otherwise                     -> allowed
"""

import logging
import math
from typing import Optional, Sequence

from ..config import ScoringWeights
from ..errors import ConfigurationError
from ..schemas import EvaluationResult, Policy, RiskFactor, SecurityIndicator
from .filters import FilterMatch

logger = logging.getLogger(__name__)

REASON_FILTER_BLOCK = "content filter: block rule matched"
REASON_SCORE_BLOCK = "risk score exceeded block threshold"
REASON_FILTER_QUARANTINE = "content filter: quarantine rule matched"
REASON_SCORE_QUARANTINE = "risk score exceeded quarantine threshold"
REASON_SUSPICIOUS = "risk score near quarantine threshold"

DISPOSITION_RANK = {"allowed": 0, "suspicious": 1, "quarantined": 2, "blocked": 3}


def validate_policy(policy: Policy) -> Policy:
    """Raise ConfigurationError unless 0 <= quarantine <= block <= 1."""
    for name in ("block_threshold", "quarantine_threshold"):
        value = getattr(policy, name)
        if value is None or math.isnan(value) or not 0.0 <= value <= 1.0:
            logger.warning("Rejected policy %s for tenant %s: %s=%s", policy.id, policy.tenant_id, name, value)
            raise ConfigurationError(f"{name} must be within [0, 1], got {value}")
    if policy.quarantine_threshold > policy.block_threshold:
        logger.warning("Rejected policy %s for tenant %s: quarantine %.2f > block %.2f",
                       policy.id, policy.tenant_id, policy.quarantine_threshold, policy.block_threshold)
        raise ConfigurationError(
            f"quarantine_threshold ({policy.quarantine_threshold}) must not exceed "
            f"block_threshold ({policy.block_threshold})"
        )
    return policy


def _first(matches: Sequence[FilterMatch], action: str) -> Optional[FilterMatch]:
    # matches arrive sorted by priority, so the first hit is the winning rule
    for m in matches:
        if m.action == action:
            return m
    return None


def decide(
    risk_score: float,
    matches: Sequence[FilterMatch],
    policy: Policy,
    *,
    factors: Sequence[RiskFactor] = (),
    indicators: Sequence[SecurityIndicator] = (),
    warnings: Sequence[str] = (),
    message_id: Optional[str] = None,
    policy_version: Optional[int] = None,
    weights: Optional[ScoringWeights] = None,
) -> EvaluationResult:
    """Choose the final disposition and wrap it into an EvaluationResult."""
    validate_policy(policy)
    weights = weights or ScoringWeights()

    reason: Optional[str] = None
    forcing_rule_id: Optional[str] = None

    block_match = _first(matches, "block")
    quarantine_match = _first(matches, "quarantine")

    if block_match is not None:
        disposition, reason, forcing_rule_id = "blocked", REASON_FILTER_BLOCK, block_match.rule_id
    elif risk_score >= policy.block_threshold:
        disposition, reason = "blocked", REASON_SCORE_BLOCK
    elif quarantine_match is not None:
        disposition = "quarantined"
        reason = f"{REASON_FILTER_QUARANTINE} ({quarantine_match.rule_name or quarantine_match.rule_id})"
        forcing_rule_id = quarantine_match.rule_id
    elif risk_score >= policy.quarantine_threshold:
        disposition, reason = "quarantined", REASON_SCORE_QUARANTINE
    elif risk_score >= policy.quarantine_threshold - weights.suspicious_margin:
        disposition, reason = "suspicious", REASON_SUSPICIOUS
    else:
        disposition = "allowed"

    return EvaluationResult(
        message_id=message_id,
        disposition=disposition,
        risk_score=risk_score,
        risk_factors=tuple(factors),
        indicators=tuple(indicators),
        quarantine_reason=reason,
        forcing_rule_id=forcing_rule_id,
        warnings=tuple(warnings),
        policy_version=policy_version,
    )
