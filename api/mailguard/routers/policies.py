from fastapi import APIRouter

from .. import state
from ..pipeline.alerts import policy_change_alert
from ..schemas import Policy, PolicyUpdate
from .persist import persist

router = APIRouter()


@router.get("/{tenant_id}/policy", response_model=Policy)
def get_policy(tenant_id: str) -> Policy:
    return state.config_store.snapshot(tenant_id).policy


@router.put("/{tenant_id}/policy", response_model=Policy)
def update_policy(tenant_id: str, payload: PolicyUpdate) -> Policy:
    """
    Apply a partial policy update.

    Thresholds must satisfy 0 <= quarantine_threshold <= block_threshold <= 1;
    violations are rejected with 422 and the previous policy stays active.
    """
    policy, changes = state.config_store.update_policy(tenant_id, payload)
    alert = policy_change_alert(policy, changes)
    if alert is not None:
        state.alert_store.record(alert)
        persist(tenant_id, alerts=[alert])
    return policy
