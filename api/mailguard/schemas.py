from datetime import datetime, timezone
from typing import Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field

Disposition = Literal["allowed", "suspicious", "quarantined", "blocked"]
RuleType = Literal["keyword", "domain", "attachment", "url", "header"]
RuleAction = Literal["allow", "quarantine", "block"]
Severity = Literal["low", "medium", "high", "critical"]
RiskFactorType = Literal[
    "domain_reputation", "sender_history", "content_analysis", "url_analysis", "attachment_risk"
]
IndicatorType = Literal[
    "spf",
    "dkim",
    "dmarc",
    "ip_reputation",
    "domain_age",
    "lookalike_domain",
    "suspicious_attachment",
    "phishing_keywords",
]
IndicatorStatus = Literal["pass", "fail", "warning", "neutral"]
AlertSeverity = Literal["info", "warning", "high", "critical"]
AlertCategory = Literal["detection", "policy", "system", "user_action"]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================================
# Inbound message
# ============================================================================

class AttachmentIn(BaseModel):
    filename: str
    content_type: str = ""
    size: int = 0


class RawMessageIn(BaseModel):
    """
    Raw message descriptor handed over by mail ingestion.

    Fields are deliberately loose: the normalizer decides what is usable and
    raises SignalError for anything it cannot classify. Authentication
    results accept booleans or "pass"/"fail" strings; anything missing is
    treated as a failure.
    """

    message_id: Optional[str] = None
    from_address: Optional[str] = None
    from_display: Optional[str] = None
    to_address: Optional[str] = None
    subject: Optional[str] = None
    body_text: Optional[str] = None
    body_html: Optional[str] = None
    source_ip: Optional[str] = None
    spf_pass: Optional[Union[bool, str]] = None
    dkim_pass: Optional[Union[bool, str]] = None
    dmarc_pass: Optional[Union[bool, str]] = None
    ml_score: Optional[float] = None
    attachments: List[Union[AttachmentIn, str]] = Field(default_factory=list)
    urls: Optional[List[str]] = None
    headers: Dict[str, str] = Field(default_factory=dict)
    sender_domain_age_days: Optional[int] = None


class BatchEvaluateIn(BaseModel):
    messages: List[RawMessageIn]


# ============================================================================
# Tenant configuration
# ============================================================================

class ContentFilterRule(BaseModel):
    """Administrator-authored pattern rule; read-only during evaluation."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    type: RuleType
    pattern: str
    action: RuleAction
    enabled: bool = True
    priority: int = 1
    description: str = ""
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class RuleIn(BaseModel):
    name: str
    type: RuleType
    pattern: str
    action: RuleAction = "quarantine"
    enabled: bool = True
    priority: int = 1
    description: str = ""


class RuleUpdate(BaseModel):
    name: Optional[str] = None
    type: Optional[RuleType] = None
    pattern: Optional[str] = None
    action: Optional[RuleAction] = None
    enabled: Optional[bool] = None
    priority: Optional[int] = None
    description: Optional[str] = None


class Policy(BaseModel):
    """
    Tenant-scoped decision policy.

    Thresholds are not range-checked here; decision.validate_policy enforces
    0 <= quarantine_threshold <= block_threshold <= 1 and raises
    ConfigurationError so callers see one error type for bad configuration.
    """

    model_config = ConfigDict(frozen=True)

    id: str = "policy-default"
    tenant_id: str = ""
    block_threshold: float = 0.9
    quarantine_threshold: float = 0.7
    block_new_domains: bool = True
    block_macros: bool = True
    allow_external_images: bool = False
    enable_real_time_alerts: bool = True
    trusted_senders: Tuple[str, ...] = ()
    blocked_senders: Tuple[str, ...] = ()
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)


class PolicyUpdate(BaseModel):
    block_threshold: Optional[float] = None
    quarantine_threshold: Optional[float] = None
    block_new_domains: Optional[bool] = None
    block_macros: Optional[bool] = None
    allow_external_images: Optional[bool] = None
    enable_real_time_alerts: Optional[bool] = None
    trusted_senders: Optional[List[str]] = None
    blocked_senders: Optional[List[str]] = None


# ============================================================================
# Evaluation output
# ============================================================================

class RiskFactor(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: RiskFactorType
    severity: Severity
    description: str
    score: float


class SecurityIndicator(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: IndicatorType
    status: IndicatorStatus
    message: str


class EvaluationResult(BaseModel):
    """
    Final classification of one message.

    risk_factors are ordered by descending score then severity; warnings list
    rules that were skipped because their pattern could not be compiled.
    evaluation_error is set only when the message could not be normalized and
    the result is the fail-closed "suspicious" placeholder.
    """

    model_config = ConfigDict(frozen=True)

    message_id: Optional[str] = None
    disposition: Disposition
    risk_score: float
    risk_factors: Tuple[RiskFactor, ...] = ()
    indicators: Tuple[SecurityIndicator, ...] = ()
    quarantine_reason: Optional[str] = None
    forcing_rule_id: Optional[str] = None
    warnings: Tuple[str, ...] = ()
    evaluation_error: Optional[str] = None
    policy_version: Optional[int] = None


class Alert(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    tenant_id: str
    message_id: Optional[str] = None
    severity: AlertSeverity
    title: str
    description: str
    created_at: datetime = Field(default_factory=utcnow)
    acknowledged: bool = False
    category: AlertCategory


class EvaluateOut(BaseModel):
    result: EvaluationResult
    alert: Optional[Alert] = None
