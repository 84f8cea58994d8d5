from typing import List

from fastapi import APIRouter

from .. import state
from ..pipeline.classify import evaluate_batch, evaluate_message
from ..schemas import BatchEvaluateIn, EvaluateOut, RawMessageIn
from .persist import persist

router = APIRouter()


@router.post("/{tenant_id}/evaluate", response_model=EvaluateOut)
def evaluate(tenant_id: str, payload: RawMessageIn) -> EvaluateOut:
    """
    Classify one inbound message under the tenant's current policy and rules.

    Returns:
    - `result.disposition`: allowed | suspicious | quarantined | blocked
    - `result.risk_score`: aggregated score in [0, 1]
    - `result.risk_factors`: contributors, highest score first
    - `result.indicators`: SPF/DKIM/DMARC and other indicator statuses
    - `result.quarantine_reason` / `result.forcing_rule_id`: why the outcome was chosen
    - `alert`: the alert raised for this message, if any

    A message that cannot be normalized (e.g. missing sender address) is
    returned as `suspicious` with `evaluation_error` set.
    """
    snap = state.config_store.snapshot(tenant_id)
    result = evaluate_message(
        payload.model_dump(),
        snap.policy,
        snap.rules,
        weights=state.weights,
        policy_version=snap.version,
    )
    alert = state.alert_store.emit(result, snap.policy, tenant_id)
    persist(tenant_id, [result], [alert])
    return EvaluateOut(result=result, alert=alert)


@router.post("/{tenant_id}/evaluate/batch", response_model=List[EvaluateOut])
def evaluate_many(tenant_id: str, payload: BatchEvaluateIn) -> List[EvaluateOut]:
    """Evaluate several messages against one configuration snapshot."""
    snap = state.config_store.snapshot(tenant_id)
    results = evaluate_batch(
        [m.model_dump() for m in payload.messages],
        snap.policy,
        snap.rules,
        weights=state.weights,
        policy_version=snap.version,
        max_workers=state.settings.batch_workers,
    )
    alerts = [state.alert_store.emit(r, snap.policy, tenant_id) for r in results]
    persist(tenant_id, results, alerts)
    return [EvaluateOut(result=r, alert=a) for r, a in zip(results, alerts)]
