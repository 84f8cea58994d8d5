"""
Alert emission and the per-tenant alert store.

emit_alert is pure; AlertStore serializes emission and acknowledgement per
tenant so concurrent evaluations of the same message never raise two alerts
of the same severity.
Alerts are append-only: acknowledgement replaces the stored record with an
acknowledged copy and is a no-op when already acknowledged.
"""

import logging
import threading
import uuid
from collections import defaultdict
from typing import Dict, List, Optional

from ..errors import AlertNotFoundError
from ..schemas import Alert, EvaluationResult, Policy

logger = logging.getLogger(__name__)

ALERT_SEVERITY_RANK: Dict[str, int] = {"info": 0, "warning": 1, "high": 2, "critical": 3}

_TITLES = {
    "blocked": "Message Blocked",
    "quarantined": "Message Quarantined",
}


def _has_critical_factor(result: EvaluationResult) -> bool:
    return any(f.severity == "critical" for f in result.risk_factors)


def alert_severity(result: EvaluationResult) -> Optional[str]:
    """Map a result to an alert severity, or None if it does not qualify."""
    critical = _has_critical_factor(result)
    if result.disposition == "blocked":
        return "critical" if critical else "high"
    if result.disposition == "quarantined":
        return "warning"
    if critical:
        return "info"
    return None


def emit_alert(
    result: EvaluationResult,
    policy: Policy,
    tenant_id: str,
    message_id: Optional[str] = None,
) -> Optional[Alert]:
    """Build the alert for result, or None when alerts are off or it does not qualify."""
    if not policy.enable_real_time_alerts:
        return None
    severity = alert_severity(result)
    if severity is None:
        return None

    message_id = message_id or result.message_id
    title = _TITLES.get(result.disposition, "Critical Risk Factor Detected")
    parts = [result.quarantine_reason or f"disposition {result.disposition}"]
    parts.append(f"risk score {result.risk_score:.2f}")
    if result.risk_factors:
        parts.append(result.risk_factors[0].description)

    return Alert(
        id=str(uuid.uuid4()),
        tenant_id=tenant_id,
        message_id=message_id or None,
        severity=severity,
        title=title,
        description="; ".join(parts),
        category="policy" if result.forcing_rule_id else "detection",
    )


def policy_change_alert(policy: Policy, changes: Dict[str, object]) -> Optional[Alert]:
    """Info alert recording an applied policy update."""
    if not policy.enable_real_time_alerts or not changes:
        return None
    summary = ", ".join(f"{k}={v}" for k, v in sorted(changes.items()))
    return Alert(
        id=str(uuid.uuid4()),
        tenant_id=policy.tenant_id,
        severity="info",
        title="Policy Update Applied",
        description=f"Policy {policy.id} updated: {summary}",
        category="policy",
    )


class AlertStore:
    """In-memory alert log with one lock per tenant."""

    def __init__(self) -> None:
        self._alerts: Dict[str, List[Alert]] = defaultdict(list)
        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock(self, tenant_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = self._locks[tenant_id] = threading.Lock()
            return lock

    def emit(
        self,
        result: EvaluationResult,
        policy: Policy,
        tenant_id: str,
        message_id: Optional[str] = None,
    ) -> Optional[Alert]:
        """
        Emit and record an alert for result.

        Returns None when the current policy or result does not call for an
        alert. Otherwise the latest alert already raised for the same message
        is returned if it is at least as severe; an escalation appends a new
        alert.
        """
        message_id = message_id or result.message_id
        alert = emit_alert(result, policy, tenant_id, message_id)
        if alert is None:
            return None
        with self._lock(tenant_id):
            if message_id:
                for existing in reversed(self._alerts[tenant_id]):
                    if existing.message_id != message_id:
                        continue
                    if ALERT_SEVERITY_RANK[existing.severity] >= ALERT_SEVERITY_RANK[alert.severity]:
                        return existing
                    break
            self._alerts[tenant_id].append(alert)
        logger.info("Alert %s (%s) raised for tenant %s message %s",
                    alert.id, alert.severity, tenant_id, message_id)
        return alert

    def record(self, alert: Alert) -> Alert:
        with self._lock(alert.tenant_id):
            self._alerts[alert.tenant_id].append(alert)
        logger.info("Alert %s (%s) recorded for tenant %s", alert.id, alert.severity, alert.tenant_id)
        return alert

    def acknowledge(self, tenant_id: str, alert_id: str) -> Alert:
        with self._lock(tenant_id):
            alerts = self._alerts[tenant_id]
            for i, alert in enumerate(alerts):
                if alert.id != alert_id:
                    continue
                if alert.acknowledged:
                    return alert
                acked = alert.model_copy(update={"acknowledged": True})
                alerts[i] = acked
                logger.info("Alert %s acknowledged for tenant %s", alert_id, tenant_id)
                return acked
        raise AlertNotFoundError(f"alert {alert_id} not found for tenant {tenant_id}")

    def acknowledge_all(self, tenant_id: str) -> int:
        """Acknowledge every open alert; returns how many changed."""
        changed = 0
        with self._lock(tenant_id):
            alerts = self._alerts[tenant_id]
            for i, alert in enumerate(alerts):
                if not alert.acknowledged:
                    alerts[i] = alert.model_copy(update={"acknowledged": True})
                    changed += 1
        if changed:
            logger.info("Acknowledged %d alerts for tenant %s", changed, tenant_id)
        return changed

    def list_alerts(
        self,
        tenant_id: str,
        unread_only: bool = False,
        severity: Optional[str] = None,
    ) -> List[Alert]:
        """Alerts for tenant, newest first."""
        with self._lock(tenant_id):
            alerts = list(self._alerts.get(tenant_id, ()))
        if unread_only:
            alerts = [a for a in alerts if not a.acknowledged]
        if severity:
            alerts = [a for a in alerts if a.severity == severity]
        return list(reversed(alerts))

    def clear(self) -> None:
        with self._locks_guard:
            self._alerts.clear()
            self._locks.clear()
