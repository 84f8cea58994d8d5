from typing import List, Optional

from fastapi import APIRouter

from .. import state
from ..schemas import Alert, AlertSeverity
from .persist import persist

router = APIRouter()


@router.get("/{tenant_id}/alerts", response_model=List[Alert])
def list_alerts(tenant_id: str, unread: bool = False, severity: Optional[AlertSeverity] = None) -> List[Alert]:
    """Newest first; `unread=true` hides acknowledged alerts."""
    return state.alert_store.list_alerts(tenant_id, unread_only=unread, severity=severity)


@router.post("/{tenant_id}/alerts/acknowledge-all")
def acknowledge_all(tenant_id: str):
    count = state.alert_store.acknowledge_all(tenant_id)
    persist(tenant_id, alerts=state.alert_store.list_alerts(tenant_id))
    return {"acknowledged": count}


@router.post("/{tenant_id}/alerts/{alert_id}/acknowledge", response_model=Alert)
def acknowledge(tenant_id: str, alert_id: str) -> Alert:
    """Idempotent: acknowledging twice returns the same acknowledged alert."""
    alert = state.alert_store.acknowledge(tenant_id, alert_id)
    persist(tenant_id, alerts=[alert])
    return alert
