"""
Evaluation orchestration.

Wires normalize -> filters -> risk -> decision for one message against one
configuration snapshot. A message that cannot be normalized is not allowed
through: it comes back as "suspicious" with the error attached so it can be
held for manual review.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, List, Mapping, Optional, Sequence, Union

from pydantic import BaseModel

from ..config import ScoringWeights
from ..errors import SignalError
from ..schemas import EvaluationResult, Policy
from .decision import decide, validate_policy
from .filters import CompiledRule, evaluate_filters
from .normalize import normalize
from .risk import aggregate

logger = logging.getLogger(__name__)

RawMessage = Union[Mapping[str, Any], BaseModel]

FAIL_CLOSED_REASON = "message could not be evaluated; held for manual review"


def _raw_message_id(raw: RawMessage) -> Optional[str]:
    value = raw.get("message_id") if isinstance(raw, Mapping) else getattr(raw, "message_id", None)
    return str(value) if value else None


def fail_closed_result(raw: RawMessage, error: SignalError, policy_version: Optional[int] = None) -> EvaluationResult:
    return EvaluationResult(
        message_id=_raw_message_id(raw),
        disposition="suspicious",
        risk_score=1.0,
        quarantine_reason=FAIL_CLOSED_REASON,
        evaluation_error=str(error),
        policy_version=policy_version,
    )


def evaluate_message(
    raw: RawMessage,
    policy: Policy,
    rules: Sequence[CompiledRule] = (),
    *,
    weights: Optional[ScoringWeights] = None,
    policy_version: Optional[int] = None,
) -> EvaluationResult:
    """
    Evaluate one raw message.

    ConfigurationError for an invalid policy propagates; SignalError is
    converted into the fail-closed suspicious result.
    """
    validate_policy(policy)
    weights = weights or ScoringWeights()

    try:
        signals = normalize(raw)
    except SignalError as e:
        logger.warning("Message %s could not be normalized (%s); failing closed",
                       _raw_message_id(raw) or "<unknown>", e)
        return fail_closed_result(raw, e, policy_version)

    matches, warnings = evaluate_filters(signals, rules)
    assessment = aggregate(signals, matches, policy, weights)

    return decide(
        assessment.score,
        matches,
        policy,
        factors=assessment.factors,
        indicators=assessment.indicators,
        warnings=warnings,
        message_id=signals.message_id or None,
        policy_version=policy_version,
        weights=weights,
    )


def evaluate_batch(
    raws: Sequence[RawMessage],
    policy: Policy,
    rules: Sequence[CompiledRule] = (),
    *,
    weights: Optional[ScoringWeights] = None,
    policy_version: Optional[int] = None,
    max_workers: int = 4,
) -> List[EvaluationResult]:
    """Evaluate many messages concurrently; results keep input order."""
    validate_policy(policy)
    weights = weights or ScoringWeights()
    if not raws:
        return []

    def _one(raw: RawMessage) -> EvaluationResult:
        return evaluate_message(raw, policy, rules, weights=weights, policy_version=policy_version)

    with ThreadPoolExecutor(max_workers=max(1, min(max_workers, len(raws)))) as pool:
        return list(pool.map(_one, raws))
