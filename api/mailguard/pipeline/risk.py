"""
Risk aggregation.

The ML anomaly score is the base signal. Authentication failures and policy
hits add fixed increments (see config.ScoringWeights); filter and policy
block/quarantine hits raise a floor under the score instead of adding to it.
Nothing here ever lowers the score, which keeps the aggregate monotonic in
the ML score.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from ..config import ScoringWeights
from ..schemas import Policy, RiskFactor, SecurityIndicator
from .filters import FilterMatch
from .normalize import MessageSignals

# ============================================================================
# Constants
# ============================================================================

SEVERITY_RANK: Dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}

MACRO_EXTENSIONS = (".docm", ".dotm", ".xlsm", ".xltm", ".xlam", ".pptm", ".potm", ".ppsm", ".ppam")

_FACTOR_TYPE_BY_RULE = {
    "keyword": "content_analysis",
    "header": "content_analysis",
    "domain": "domain_reputation",
    "url": "url_analysis",
    "attachment": "attachment_risk",
}

_INDICATOR_ORDER = ("spf", "dkim", "dmarc", "domain_age", "suspicious_attachment", "phishing_keywords")

_STATUS_RANK = {"neutral": 0, "pass": 1, "warning": 2, "fail": 3}


@dataclass(frozen=True)
class RiskAssessment:
    score: float
    factors: Tuple[RiskFactor, ...]
    indicators: Tuple[SecurityIndicator, ...]


# ============================================================================
# Helper Functions
# ============================================================================

def _ml_severity(score: float) -> str:
    if score >= 0.9:
        return "critical"
    if score >= 0.7:
        return "high"
    if score >= 0.4:
        return "medium"
    return "low"


def _clamp(value: float) -> float:
    return round(min(1.0, max(0.0, value)), 4)


def _sender_listed(sender: str, entries: Sequence[str]) -> bool:
    """Entries are full addresses or "@domain" suffixes, case-insensitive."""
    sender = sender.lower()
    for entry in entries:
        e = entry.strip().lower()
        if not e:
            continue
        if e.startswith("@"):
            if sender.endswith(e) or sender.split("@", 1)[1].endswith("." + e[1:]):
                return True
        elif sender == e:
            return True
    return False


def is_macro_attachment(filename: str) -> bool:
    return filename.lower().endswith(MACRO_EXTENSIONS)


class _Collector:
    """Accumulates factors and keeps the most severe status per indicator."""

    def __init__(self) -> None:
        self.factors: List[RiskFactor] = []
        self.indicators: Dict[str, SecurityIndicator] = {}

    def factor(self, type_: str, severity: str, description: str, score: float) -> None:
        self.factors.append(RiskFactor(type=type_, severity=severity, description=description, score=_clamp(score)))

    def indicator(self, type_: str, status: str, message: str) -> None:
        current = self.indicators.get(type_)
        if current is None or _STATUS_RANK[status] > _STATUS_RANK[current.status]:
            self.indicators[type_] = SecurityIndicator(type=type_, status=status, message=message)

    def ordered_factors(self) -> Tuple[RiskFactor, ...]:
        # sorted() is stable, so equal (score, severity) keep insertion order.
        return tuple(sorted(self.factors, key=lambda f: (-f.score, -SEVERITY_RANK[f.severity])))

    def ordered_indicators(self) -> Tuple[SecurityIndicator, ...]:
        return tuple(self.indicators[t] for t in _INDICATOR_ORDER if t in self.indicators)


# ============================================================================
# Public API
# ============================================================================

def aggregate(
    signals: MessageSignals,
    matches: Sequence[FilterMatch],
    policy: Optional[Policy] = None,
    weights: Optional[ScoringWeights] = None,
) -> RiskAssessment:
    """
    Combine ML score, authentication results, policy hits and filter matches.

    Returns the clamped score with risk factors ordered by descending score
    (ties: higher severity first) and indicators in a fixed order.
    """
    policy = policy or Policy()
    weights = weights or ScoringWeights()
    out = _Collector()

    score = signals.ml_score
    floor = 0.0

    out.factor("content_analysis", _ml_severity(signals.ml_score),
               f"ML anomaly score {signals.ml_score:.2f}", signals.ml_score)

    # Authentication
    for check, passed in signals.auth_results.items():
        label = check.upper()
        if passed:
            out.indicator(check, "pass", f"{label} check passed")
            continue
        inc = weights.auth_increment(check)
        score += inc
        out.indicator(check, "fail", f"{label} check failed or missing")
        out.factor("domain_reputation", weights.auth_severity[check],
                   f"{label} authentication failed for {signals.sender_domain}", inc)

    # Domain age
    age = signals.sender_domain_age_days
    if age is None:
        out.indicator("domain_age", "neutral", "Sender domain age unknown")
    elif age < weights.new_domain_days:
        if policy.block_new_domains:
            floor = max(floor, weights.policy_block_floor)
            out.indicator("domain_age", "fail", f"Sender domain registered {age} days ago")
            out.factor("domain_reputation", "critical",
                       f"Newly registered domain {signals.sender_domain} blocked by policy",
                       weights.policy_block_floor)
        else:
            score += weights.new_domain
            out.indicator("domain_age", "warning", f"Sender domain registered {age} days ago")
            out.factor("domain_reputation", "medium",
                       f"Newly registered domain {signals.sender_domain}", weights.new_domain)
    else:
        out.indicator("domain_age", "pass", f"Sender domain is {age} days old")

    # Sender lists
    if _sender_listed(signals.sender_address, policy.blocked_senders):
        floor = max(floor, weights.policy_block_floor)
        out.factor("sender_history", "critical",
                   f"Sender {signals.sender_address} is on the blocked list", weights.policy_block_floor)
    elif _sender_listed(signals.sender_address, policy.trusted_senders):
        out.factor("sender_history", "low", f"Sender {signals.sender_address} is on the trusted list", 0.0)

    # Macro-enabled attachments
    macros = [a.filename for a in signals.attachments if is_macro_attachment(a.filename)]
    if macros:
        names = ", ".join(macros)
        if policy.block_macros:
            floor = max(floor, weights.policy_block_floor)
            out.indicator("suspicious_attachment", "fail", f"Macro-enabled attachment: {names}")
            out.factor("attachment_risk", "critical",
                       f"Macro-enabled attachment blocked by policy: {names}", weights.policy_block_floor)
        else:
            score += weights.macro_attachment
            out.indicator("suspicious_attachment", "warning", f"Macro-enabled attachment: {names}")
            out.factor("attachment_risk", "high", f"Macro-enabled attachment: {names}", weights.macro_attachment)

    # Content filter matches
    for m in matches:
        factor_type = _FACTOR_TYPE_BY_RULE.get(m.rule_type, "content_analysis")
        desc = f"Content filter '{m.rule_name or m.rule_id}' ({m.action}) matched {m.matched_field}"
        if m.action == "block":
            floor = max(floor, weights.block_floor)
            out.factor(factor_type, "critical", desc, weights.block_floor)
        elif m.action == "quarantine":
            floor = max(floor, policy.quarantine_threshold)
            out.factor(factor_type, "high", desc, policy.quarantine_threshold)
        else:
            out.factor(factor_type, "low", desc, 0.0)
            continue

        status = "fail" if m.action == "block" else "warning"
        if m.rule_type == "attachment":
            out.indicator("suspicious_attachment", status, f"Attachment matched filter '{m.rule_name}'")
        elif m.rule_type in ("keyword", "header"):
            out.indicator("phishing_keywords", status, f"Content matched filter '{m.rule_name}'")

    return RiskAssessment(
        score=_clamp(max(score, floor)),
        factors=out.ordered_factors(),
        indicators=out.ordered_indicators(),
    )
