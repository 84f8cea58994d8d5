"""
Content filter engine.

Rules are compiled once, when they enter a configuration snapshot, and the
compiled form is shared read-only by every evaluation. A rule whose pattern
does not compile is kept with its error so evaluation can skip it and report
a warning; one bad rule never aborts a whole evaluation.
"""

import logging
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from ..schemas import ContentFilterRule, RuleAction, RuleType
from .normalize import MessageSignals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CompiledRule:
    rule: ContentFilterRule
    regex: Optional[re.Pattern]
    error: Optional[str] = None
    seq: int = 0

    @property
    def id(self) -> str:
        return self.rule.id

    @property
    def enabled(self) -> bool:
        return self.rule.enabled


@dataclass(frozen=True)
class FilterMatch:
    rule_id: str
    action: RuleAction
    priority: int
    rule_name: str = ""
    rule_type: RuleType = "keyword"
    matched_field: str = ""
    matched_text: str = ""


def compile_rule(rule: ContentFilterRule, seq: int = 0) -> CompiledRule:
    """Compile a rule's pattern as a case-insensitive regex."""
    try:
        regex = re.compile(rule.pattern, re.IGNORECASE)
    except re.error as e:
        return CompiledRule(rule=rule, regex=None, error=f"invalid pattern {rule.pattern!r}: {e}", seq=seq)
    return CompiledRule(rule=rule, regex=regex, seq=seq)


def check_pattern(pattern: str) -> Optional[str]:
    """Return a compile error message for pattern, or None if it is valid."""
    try:
        re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        return str(e)
    return None


def _fields_for(rule_type: str, signals: MessageSignals) -> List[Tuple[str, str]]:
    if rule_type == "keyword":
        return [("subject", signals.subject), ("body", signals.body_text)]
    if rule_type == "header":
        fields = [("subject", signals.subject), ("body", signals.body_text)]
        sender = f"{signals.sender_display} <{signals.sender_address}>".strip()
        fields.append(("header:from", sender))
        fields.append(("header:to", signals.recipient))
        fields.extend((f"header:{name}", value) for name, value in signals.headers)
        return fields
    if rule_type in ("domain", "url"):
        fields = [("sender_domain", signals.sender_domain)]
        fields.extend(("url_host", h) for h in signals.url_hosts)
        fields.extend(("url", u) for u in signals.urls)
        return fields
    if rule_type == "attachment":
        fields = []
        for a in signals.attachments:
            fields.append(("attachment", a.filename))
            if a.content_type:
                fields.append(("attachment_type", a.content_type))
        return fields
    return []


def _as_compiled(rules: Iterable[Union[CompiledRule, ContentFilterRule]]) -> List[CompiledRule]:
    out: List[CompiledRule] = []
    for pos, r in enumerate(rules):
        out.append(r if isinstance(r, CompiledRule) else compile_rule(r, seq=pos))
    return out


def evaluate_filters(
    signals: MessageSignals,
    rules: Sequence[Union[CompiledRule, ContentFilterRule]],
) -> Tuple[List[FilterMatch], List[str]]:
    """
    Match enabled rules against the signal fields selected by rule type.

    Returns (matches, warnings). Matches are ordered by ascending priority,
    then by rule creation order. Warnings name rules skipped because their
    pattern is malformed.
    """
    matches: List[Tuple[int, FilterMatch]] = []
    warnings: List[str] = []

    for compiled in _as_compiled(rules):
        rule = compiled.rule
        if not rule.enabled:
            continue
        if compiled.regex is None:
            msg = f"rule {rule.id} ({rule.name}) skipped: {compiled.error}"
            logger.warning(msg)
            warnings.append(msg)
            continue

        for field_name, value in _fields_for(rule.type, signals):
            if not value:
                continue
            m = compiled.regex.search(value)
            if m is None:
                continue
            matches.append((
                compiled.seq,
                FilterMatch(
                    rule_id=rule.id,
                    action=rule.action,
                    priority=rule.priority,
                    rule_name=rule.name,
                    rule_type=rule.type,
                    matched_field=field_name,
                    matched_text=m.group(0)[:200],
                ),
            ))
            break

    matches.sort(key=lambda item: (item[1].priority, item[0]))
    return [m for _, m in matches], warnings
