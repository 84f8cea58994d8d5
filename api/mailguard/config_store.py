"""
Versioned tenant configuration.

Each tenant has exactly one active ConfigSnapshot holding its policy and its
compiled content filter rules. Snapshots are immutable; every mutation builds
a new snapshot with version + 1 and swaps it in under a lock. An evaluation
that grabbed a snapshot keeps seeing it unchanged even while administrators
edit the configuration.
"""

import itertools
import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Tuple, Union

from pydantic import ValidationError

from .errors import ConfigurationError, RuleNotFoundError
from .pipeline.decision import validate_policy
from .pipeline.filters import CompiledRule, check_pattern, compile_rule
from .schemas import ContentFilterRule, Policy, PolicyUpdate, RuleIn, RuleUpdate, utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConfigSnapshot:
    tenant_id: str
    version: int
    policy: Policy
    rules: Tuple[CompiledRule, ...] = ()

    def find(self, rule_id: str) -> Optional[CompiledRule]:
        for r in self.rules:
            if r.id == rule_id:
                return r
        return None


def default_policy(tenant_id: str) -> Policy:
    return Policy(id=f"policy-{tenant_id}", tenant_id=tenant_id)


class ConfigStore:
    def __init__(self) -> None:
        self._snapshots: Dict[str, ConfigSnapshot] = {}
        self._lock = threading.Lock()
        # Monotonic creation counter; breaks priority ties by creation order.
        self._seq = itertools.count()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def snapshot(self, tenant_id: str) -> ConfigSnapshot:
        with self._lock:
            return self._current(tenant_id)

    def _current(self, tenant_id: str) -> ConfigSnapshot:
        snap = self._snapshots.get(tenant_id)
        if snap is None:
            snap = ConfigSnapshot(tenant_id=tenant_id, version=0, policy=default_policy(tenant_id))
            self._snapshots[tenant_id] = snap
        return snap

    def list_rules(self, tenant_id: str, search: Optional[str] = None) -> List[ContentFilterRule]:
        rules = [r.rule for r in self.snapshot(tenant_id).rules]
        if search:
            term = search.lower()
            rules = [r for r in rules if term in r.name.lower() or term in r.pattern.lower()]
        return sorted(rules, key=lambda r: r.priority)

    def get_rule(self, tenant_id: str, rule_id: str) -> ContentFilterRule:
        compiled = self.snapshot(tenant_id).find(rule_id)
        if compiled is None:
            raise RuleNotFoundError(f"rule {rule_id} not found for tenant {tenant_id}")
        return compiled.rule

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------
    def _swap(self, snap: ConfigSnapshot, *, policy: Optional[Policy] = None,
              rules: Optional[Tuple[CompiledRule, ...]] = None) -> ConfigSnapshot:
        new = ConfigSnapshot(
            tenant_id=snap.tenant_id,
            version=snap.version + 1,
            policy=policy if policy is not None else snap.policy,
            rules=rules if rules is not None else snap.rules,
        )
        self._snapshots[snap.tenant_id] = new
        logger.info("Tenant %s configuration now at version %d", snap.tenant_id, new.version)
        return new

    def set_policy(self, tenant_id: str, policy: Policy) -> ConfigSnapshot:
        """Replace the tenant policy wholesale after validating it."""
        if policy.tenant_id and policy.tenant_id != tenant_id:
            raise ConfigurationError(f"policy belongs to tenant {policy.tenant_id}, not {tenant_id}")
        validate_policy(policy)
        with self._lock:
            snap = self._current(tenant_id)
            policy = policy.model_copy(update={"tenant_id": tenant_id, "updated_at": utcnow()})
            return self._swap(snap, policy=policy)

    def update_policy(
        self, tenant_id: str, update: Union[PolicyUpdate, Mapping[str, object]]
    ) -> Tuple[Policy, Dict[str, object]]:
        """Apply a partial update; returns (new policy, changed fields)."""
        if isinstance(update, PolicyUpdate):
            update = update.model_dump(exclude_none=True)
        changes = {k: v for k, v in update.items() if v is not None}
        unknown = set(changes) - set(PolicyUpdate.model_fields)
        if unknown:
            raise ConfigurationError(f"unknown policy fields: {sorted(unknown)}")
        for key in ("trusted_senders", "blocked_senders"):
            if key in changes:
                changes[key] = tuple(changes[key])

        with self._lock:
            snap = self._current(tenant_id)
            changes = {k: v for k, v in changes.items() if getattr(snap.policy, k) != v}
            if not changes:
                return snap.policy, {}
            policy = snap.policy.model_copy(update={**changes, "updated_at": utcnow()})
            validate_policy(policy)
            self._swap(snap, policy=policy)
        return policy, changes

    def create_rule(self, tenant_id: str, data: RuleIn, *, strict: bool = False) -> ContentFilterRule:
        """
        Add a rule. A malformed pattern is stored and skipped at evaluation
        time, unless strict is set, in which case ConfigurationError is raised.
        """
        error = check_pattern(data.pattern)
        if error and strict:
            raise ConfigurationError(f"invalid pattern {data.pattern!r}: {error}")
        now = utcnow()
        rule = ContentFilterRule(id=str(uuid.uuid4()), created_at=now, updated_at=now, **data.model_dump())
        if error:
            logger.warning("Rule %s for tenant %s stored with invalid pattern: %s", rule.id, tenant_id, error)
        with self._lock:
            snap = self._current(tenant_id)
            compiled = compile_rule(rule, seq=next(self._seq))
            self._swap(snap, rules=snap.rules + (compiled,))
        return rule

    def update_rule(
        self,
        tenant_id: str,
        rule_id: str,
        update: Union[RuleUpdate, Mapping[str, object]],
        *,
        strict: bool = False,
        toggle: bool = False,
    ) -> ContentFilterRule:
        """
        Apply a partial rule update. With toggle set, the enabled flag is
        flipped from the value in the current snapshot under the same lock.
        """
        if isinstance(update, RuleUpdate):
            update = update.model_dump(exclude_none=True)
        changes = {k: v for k, v in update.items() if v is not None}
        if strict and "pattern" in changes:
            error = check_pattern(str(changes["pattern"]))
            if error:
                raise ConfigurationError(f"invalid pattern {changes['pattern']!r}: {error}")

        with self._lock:
            snap = self._current(tenant_id)
            rules = list(snap.rules)
            for i, compiled in enumerate(rules):
                if compiled.id != rule_id:
                    continue
                if toggle:
                    changes["enabled"] = not compiled.rule.enabled
                data = {**compiled.rule.model_dump(), **changes, "updated_at": utcnow()}
                try:
                    rule = ContentFilterRule.model_validate(data)
                except ValidationError as exc:
                    raise ConfigurationError(f"invalid update for rule {rule_id}: {exc}") from exc
                rules[i] = compile_rule(rule, seq=compiled.seq)
                self._swap(snap, rules=tuple(rules))
                return rule
        raise RuleNotFoundError(f"rule {rule_id} not found for tenant {tenant_id}")

    def toggle_rule(self, tenant_id: str, rule_id: str, enabled: Optional[bool] = None) -> ContentFilterRule:
        """Flip a rule's enabled flag, or set it explicitly."""
        if enabled is None:
            return self.update_rule(tenant_id, rule_id, {}, toggle=True)
        return self.update_rule(tenant_id, rule_id, {"enabled": enabled})

    def delete_rule(self, tenant_id: str, rule_id: str) -> None:
        with self._lock:
            snap = self._current(tenant_id)
            rules = tuple(r for r in snap.rules if r.id != rule_id)
            if len(rules) == len(snap.rules):
                raise RuleNotFoundError(f"rule {rule_id} not found for tenant {tenant_id}")
            self._swap(snap, rules=rules)

    def clear(self) -> None:
        with self._lock:
            self._snapshots.clear()
