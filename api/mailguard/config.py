"""
Runtime configuration.

Service settings and scoring weights are read from the environment with
defaults, so deployments can tune the engine without code changes. Weights
are frozen once loaded and shared read-only by every evaluation.
"""

import os
from dataclasses import dataclass, field, fields
from typing import Dict

from .errors import ConfigurationError

# ============================================================================
# Service Settings
# ============================================================================

DEFAULT_DATABASE_URL = "sqlite:///./mailguard.db"


def _env_flag(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    persist_results: bool = False
    log_level: str = "INFO"
    batch_workers: int = 4


def load_settings() -> Settings:
    """Build Settings from environment variables."""
    try:
        workers = int(os.getenv("MAILGUARD_BATCH_WORKERS", "4"))
    except ValueError as e:
        raise ConfigurationError(f"MAILGUARD_BATCH_WORKERS must be an integer: {e}") from e
    if workers < 1:
        raise ConfigurationError("MAILGUARD_BATCH_WORKERS must be at least 1")

    return Settings(
        database_url=os.getenv("DATABASE_URL", DEFAULT_DATABASE_URL),
        persist_results=_env_flag("MAILGUARD_PERSIST_RESULTS"),
        log_level=os.getenv("MAILGUARD_LOG_LEVEL", "INFO").upper(),
        batch_workers=workers,
    )


# ============================================================================
# Scoring Weights
# ============================================================================

# Increments are added on top of the ML anomaly score; floors are minimum
# aggregated scores forced by filter or policy matches.
@dataclass(frozen=True)
class ScoringWeights:
    spf_fail: float = 0.15
    dkim_fail: float = 0.10
    dmarc_fail: float = 0.20
    new_domain: float = 0.10
    macro_attachment: float = 0.25
    block_floor: float = 0.90
    policy_block_floor: float = 1.0
    suspicious_margin: float = 0.20
    new_domain_days: int = 30
    auth_severity: Dict[str, str] = field(
        default_factory=lambda: {"spf": "medium", "dkim": "medium", "dmarc": "high"}
    )

    def auth_increment(self, check: str) -> float:
        return {"spf": self.spf_fail, "dkim": self.dkim_fail, "dmarc": self.dmarc_fail}[check]


_SEVERITIES = {"low", "medium", "high", "critical"}


def validate_weights(weights: ScoringWeights) -> ScoringWeights:
    """Raise ConfigurationError unless every weight is usable."""
    for f in fields(weights):
        value = getattr(weights, f.name)
        if f.name == "new_domain_days":
            if int(value) <= 0:
                raise ConfigurationError("new_domain_days must be positive")
        elif f.name == "auth_severity":
            for check in ("spf", "dkim", "dmarc"):
                if value.get(check) not in _SEVERITIES:
                    raise ConfigurationError(f"auth_severity[{check!r}] must be one of {sorted(_SEVERITIES)}")
        elif not 0.0 <= float(value) <= 1.0:
            raise ConfigurationError(f"weight {f.name}={value} outside [0, 1]")
    return weights


def load_weights() -> ScoringWeights:
    """Build ScoringWeights, applying MAILGUARD_WEIGHT_<NAME> overrides."""
    defaults = ScoringWeights()
    overrides: Dict[str, object] = {}
    for f in fields(ScoringWeights):
        env_name = f"MAILGUARD_WEIGHT_{f.name.upper()}"
        raw = os.getenv(env_name)
        if raw is None:
            continue
        if f.name == "auth_severity":
            # Format: "spf=medium,dkim=medium,dmarc=high"
            sev = dict(defaults.auth_severity)
            for part in raw.split(","):
                check, _, level = part.partition("=")
                if check.strip():
                    sev[check.strip().lower()] = level.strip().lower()
            overrides[f.name] = sev
            continue
        try:
            overrides[f.name] = int(raw) if f.name == "new_domain_days" else float(raw)
        except ValueError as e:
            raise ConfigurationError(f"{env_name} is not numeric: {raw!r}") from e
    return validate_weights(ScoringWeights(**overrides))
