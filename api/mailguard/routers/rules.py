from typing import List, Optional

from fastapi import APIRouter, Response, status

from .. import state
from ..schemas import ContentFilterRule, RuleIn, RuleUpdate

router = APIRouter()


@router.get("/{tenant_id}/rules", response_model=List[ContentFilterRule])
def list_rules(tenant_id: str, search: Optional[str] = None) -> List[ContentFilterRule]:
    """Rules ordered by priority; `search` matches name or pattern."""
    return state.config_store.list_rules(tenant_id, search=search)


@router.post("/{tenant_id}/rules", response_model=ContentFilterRule, status_code=status.HTTP_201_CREATED)
def create_rule(tenant_id: str, payload: RuleIn) -> ContentFilterRule:
    return state.config_store.create_rule(tenant_id, payload, strict=True)


@router.get("/{tenant_id}/rules/{rule_id}", response_model=ContentFilterRule)
def get_rule(tenant_id: str, rule_id: str) -> ContentFilterRule:
    return state.config_store.get_rule(tenant_id, rule_id)


@router.put("/{tenant_id}/rules/{rule_id}", response_model=ContentFilterRule)
def update_rule(tenant_id: str, rule_id: str, payload: RuleUpdate) -> ContentFilterRule:
    return state.config_store.update_rule(tenant_id, rule_id, payload, strict=True)


@router.post("/{tenant_id}/rules/{rule_id}/toggle", response_model=ContentFilterRule)
def toggle_rule(tenant_id: str, rule_id: str) -> ContentFilterRule:
    return state.config_store.toggle_rule(tenant_id, rule_id)


@router.delete("/{tenant_id}/rules/{rule_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_rule(tenant_id: str, rule_id: str) -> Response:
    state.config_store.delete_rule(tenant_id, rule_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
