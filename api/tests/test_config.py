import pytest

from mailguard.config import ScoringWeights, load_settings, load_weights, validate_weights
from mailguard.errors import ConfigurationError


def test_default_weights():
    w = load_weights()
    assert w == ScoringWeights()
    assert w.auth_increment("dmarc") == 0.20


def test_weight_overrides_from_env(monkeypatch):
    monkeypatch.setenv("MAILGUARD_WEIGHT_SPF_FAIL", "0.3")
    monkeypatch.setenv("MAILGUARD_WEIGHT_NEW_DOMAIN_DAYS", "14")
    monkeypatch.setenv("MAILGUARD_WEIGHT_AUTH_SEVERITY", "dkim=high")
    w = load_weights()
    assert w.spf_fail == 0.3
    assert w.new_domain_days == 14
    assert w.auth_severity == {"spf": "medium", "dkim": "high", "dmarc": "high"}


@pytest.mark.parametrize("name,value", [
    ("MAILGUARD_WEIGHT_BLOCK_FLOOR", "1.5"),
    ("MAILGUARD_WEIGHT_DKIM_FAIL", "lots"),
    ("MAILGUARD_WEIGHT_NEW_DOMAIN_DAYS", "0"),
    ("MAILGUARD_WEIGHT_AUTH_SEVERITY", "spf=extreme"),
])
def test_invalid_weights_rejected(monkeypatch, name, value):
    monkeypatch.setenv(name, value)
    with pytest.raises(ConfigurationError):
        load_weights()


def test_validate_weights_direct():
    with pytest.raises(ConfigurationError):
        validate_weights(ScoringWeights(suspicious_margin=-0.1))


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("DATABASE_URL", "sqlite:///tmp.db")
    monkeypatch.setenv("MAILGUARD_PERSIST_RESULTS", "yes")
    monkeypatch.setenv("MAILGUARD_LOG_LEVEL", "debug")
    monkeypatch.setenv("MAILGUARD_BATCH_WORKERS", "8")
    s = load_settings()
    assert s.database_url == "sqlite:///tmp.db"
    assert s.persist_results is True
    assert s.log_level == "DEBUG"
    assert s.batch_workers == 8


def test_bad_worker_count(monkeypatch):
    monkeypatch.setenv("MAILGUARD_BATCH_WORKERS", "0")
    with pytest.raises(ConfigurationError):
        load_settings()
