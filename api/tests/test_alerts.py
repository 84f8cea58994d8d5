import threading

import pytest

from mailguard.errors import AlertNotFoundError
from mailguard.pipeline.alerts import AlertStore, alert_severity, emit_alert, policy_change_alert
from mailguard.schemas import EvaluationResult, RiskFactor


def _result(disposition, severity="low", message_id="m1", forcing_rule_id=None):
    return EvaluationResult(
        message_id=message_id,
        disposition=disposition,
        risk_score=0.5,
        risk_factors=(RiskFactor(type="content_analysis", severity=severity, description="x", score=0.5),),
        quarantine_reason="reason",
        forcing_rule_id=forcing_rule_id,
    )


@pytest.mark.parametrize("disposition,severity,expected", [
    ("blocked", "critical", "critical"),
    ("blocked", "high", "high"),
    ("quarantined", "critical", "warning"),
    ("quarantined", "low", "warning"),
    ("suspicious", "critical", "info"),
    ("allowed", "critical", "info"),
    ("suspicious", "high", None),
    ("allowed", "low", None),
])
def test_alert_severity_mapping(disposition, severity, expected):
    assert alert_severity(_result(disposition, severity)) == expected


def test_emit_alert_fields(policy):
    alert = emit_alert(_result("blocked", "critical", forcing_rule_id="r9"), policy, "tenant-1")
    assert alert.tenant_id == "tenant-1"
    assert alert.message_id == "m1"
    assert alert.severity == "critical"
    assert alert.title == "Message Blocked"
    assert alert.category == "policy"
    assert alert.acknowledged is False


def test_no_alert_when_real_time_alerts_disabled(policy):
    p = policy.model_copy(update={"enable_real_time_alerts": False})
    assert emit_alert(_result("blocked", "critical"), p, "tenant-1") is None


def test_no_alert_for_allowed(policy):
    assert emit_alert(_result("allowed"), policy, "tenant-1") is None


def test_store_does_not_duplicate_alerts_for_same_message(policy):
    store = AlertStore()
    first = store.emit(_result("quarantined"), policy, "tenant-1")
    second = store.emit(_result("quarantined"), policy, "tenant-1")
    assert first is not None
    assert second.id == first.id
    assert len(store.list_alerts("tenant-1")) == 1


def test_concurrent_emission_raises_one_alert(policy):
    store = AlertStore()
    barrier = threading.Barrier(8)

    def worker():
        barrier.wait()
        store.emit(_result("blocked", "critical"), policy, "tenant-1")

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert len(store.list_alerts("tenant-1")) == 1


def test_acknowledge_is_idempotent(policy):
    store = AlertStore()
    alert = store.emit(_result("blocked"), policy, "tenant-1")
    acked = store.acknowledge("tenant-1", alert.id)
    again = store.acknowledge("tenant-1", alert.id)
    assert acked.acknowledged and again.acknowledged
    assert again == acked
    assert store.list_alerts("tenant-1", unread_only=True) == []


def test_acknowledge_unknown_alert(policy):
    store = AlertStore()
    with pytest.raises(AlertNotFoundError):
        store.acknowledge("tenant-1", "missing")


def test_alerts_are_tenant_scoped(policy):
    store = AlertStore()
    alert = store.emit(_result("blocked"), policy, "tenant-1")
    assert store.list_alerts("tenant-2") == []
    with pytest.raises(AlertNotFoundError):
        store.acknowledge("tenant-2", alert.id)


def test_acknowledge_all_and_filters(policy):
    store = AlertStore()
    store.emit(_result("blocked", "critical", message_id="a"), policy, "tenant-1")
    store.emit(_result("quarantined", message_id="b"), policy, "tenant-1")
    assert [a.message_id for a in store.list_alerts("tenant-1")] == ["b", "a"]
    assert [a.message_id for a in store.list_alerts("tenant-1", severity="critical")] == ["a"]
    assert store.acknowledge_all("tenant-1") == 2
    assert store.acknowledge_all("tenant-1") == 0
    assert store.list_alerts("tenant-1", unread_only=True) == []


def test_policy_change_alert(policy):
    alert = policy_change_alert(policy, {"block_threshold": 0.85})
    assert alert.severity == "info"
    assert alert.category == "policy"
    assert "block_threshold=0.85" in alert.description
    assert policy_change_alert(policy, {}) is None


def test_escalated_message_gets_a_new_alert(policy):
    store = AlertStore()
    first = store.emit(_result("quarantined"), policy, "tenant-1")
    escalated = store.emit(_result("blocked", "critical"), policy, "tenant-1")
    assert first.severity == "warning"
    assert escalated.severity == "critical"
    assert escalated.id != first.id
    assert [a.severity for a in store.list_alerts("tenant-1")] == ["critical", "warning"]

    # A later, milder result for the same message reuses the latest alert.
    again = store.emit(_result("quarantined"), policy, "tenant-1")
    assert again.id == escalated.id
    assert len(store.list_alerts("tenant-1")) == 2


def test_reevaluation_without_qualifying_alert_returns_none(policy):
    store = AlertStore()
    assert store.emit(_result("quarantined"), policy, "tenant-1") is not None

    alerts_off = policy.model_copy(update={"enable_real_time_alerts": False})
    assert store.emit(_result("quarantined"), alerts_off, "tenant-1") is None
    assert store.emit(_result("suspicious"), policy, "tenant-1") is None
    assert len(store.list_alerts("tenant-1")) == 1
