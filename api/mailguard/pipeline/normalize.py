"""
Signal normalization.

Turns a raw message descriptor into an immutable MessageSignals record. The
function is pure: identical input always yields identical signals, so a
failed pipeline run can simply be retried. Missing authentication results
are treated as failures; missing optional text defaults to "".
"""

import math
import re
from dataclasses import dataclass
from email.utils import parseaddr
from typing import Any, Dict, List, Mapping, Optional, Tuple

from pydantic import BaseModel

from ..errors import SignalError

# ============================================================================
# Patterns
# ============================================================================

_ADDRESS_RE = re.compile(r"^[^@\s<>]+@[^@\s<>]+\.[^@\s<>]+$")
_URL_RE = re.compile(r"(?:https?://|www\.)[^\s<>\"']+", re.IGNORECASE)
_URL_HOST_RE = re.compile(r"(?:https?://|www\.)([^/\s?#]+)", re.IGNORECASE)
_TAG_RE = re.compile(r"<[^>]+>")
_WS_RE = re.compile(r"\s+")

_AUTH_PASS_VALUES = {"pass", "true", "1", "yes"}


# ============================================================================
# Signal Record
# ============================================================================

@dataclass(frozen=True)
class Attachment:
    filename: str
    content_type: str = ""
    size: int = 0


@dataclass(frozen=True)
class MessageSignals:
    message_id: str
    sender_address: str
    sender_display: str
    sender_domain: str
    recipient: str
    subject: str
    body_text: str
    has_body_text: bool
    has_body_html: bool
    source_ip: str
    attachments: Tuple[Attachment, ...]
    urls: Tuple[str, ...]
    url_hosts: Tuple[str, ...]
    spf_pass: bool
    dkim_pass: bool
    dmarc_pass: bool
    ml_score: float
    headers: Tuple[Tuple[str, str], ...] = ()
    sender_domain_age_days: Optional[int] = None

    @property
    def attachment_count(self) -> int:
        return len(self.attachments)

    @property
    def url_count(self) -> int:
        return len(self.urls)

    @property
    def auth_results(self) -> Dict[str, bool]:
        return {"spf": self.spf_pass, "dkim": self.dkim_pass, "dmarc": self.dmarc_pass}


# ============================================================================
# Helper Functions
# ============================================================================

def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def _parse_address(raw: Any, field: str) -> Tuple[str, str]:
    """Return (display, address); raise SignalError when no usable address."""
    value = _text(raw)
    if not value:
        raise SignalError(f"missing required field {field}", field=field)
    display, addr = parseaddr(value)
    addr = addr.strip().lower()
    if not _ADDRESS_RE.match(addr):
        raise SignalError(f"malformed address in {field}: {value!r}", field=field)
    return display.strip(), addr


def _extract_domain(addr: str) -> str:
    return addr.rsplit("@", 1)[1].lower().strip()


def _auth_passed(value: Any) -> bool:
    """Only an explicit pass counts; None and unknown strings fail closed."""
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in _AUTH_PASS_VALUES


def _ml_score(value: Any) -> float:
    if value is None:
        raise SignalError("missing required field ml_score", field="ml_score")
    if isinstance(value, bool):
        raise SignalError("ml_score must be numeric", field="ml_score")
    try:
        score = float(value)
    except (TypeError, ValueError) as e:
        raise SignalError(f"ml_score must be numeric: {value!r}", field="ml_score") from e
    if math.isnan(score) or not 0.0 <= score <= 1.0:
        raise SignalError(f"ml_score outside [0, 1]: {score}", field="ml_score")
    return score


def _html_to_text(html: str) -> str:
    return _WS_RE.sub(" ", _TAG_RE.sub(" ", html)).strip()


def _dedupe(items: List[str]) -> Tuple[str, ...]:
    seen: Dict[str, None] = {}
    for item in items:
        seen.setdefault(item, None)
    return tuple(seen)


def _urls_in_text(text: str) -> List[str]:
    return [m.group(0).rstrip(".,;:)]") for m in _URL_RE.finditer(text)]


def _host_of(url: str) -> str:
    m = _URL_HOST_RE.match(url)
    if m:
        host = m.group(1)
    else:
        host = url.split("/", 1)[0]
    # Strip credentials, ports, and IPv6 brackets.
    host = host.rsplit("@", 1)[-1].split(":")[0].strip("[]").lower()
    return host[4:] if host.startswith("www.") else host


def _attachments(raw: Any) -> Tuple[Attachment, ...]:
    if raw is None:
        return ()
    if not isinstance(raw, (list, tuple)):
        raise SignalError(f"attachments must be a list, got {type(raw).__name__}", field="attachments")
    out: List[Attachment] = []
    for item in raw:
        if isinstance(item, BaseModel):
            item = item.model_dump()
        if isinstance(item, str):
            name = item.strip()
            if name:
                out.append(Attachment(filename=name))
            continue
        if not isinstance(item, Mapping) or not _text(item.get("filename")):
            raise SignalError(f"attachment without filename: {item!r}", field="attachments")
        try:
            size = int(item.get("size") or 0)
        except (TypeError, ValueError) as e:
            raise SignalError(f"attachment size must be an integer: {item!r}", field="attachments") from e
        out.append(
            Attachment(
                filename=_text(item.get("filename")),
                content_type=_text(item.get("content_type")).lower(),
                size=size,
            )
        )
    return tuple(out)


# ============================================================================
# Public API
# ============================================================================

def normalize(raw: Mapping[str, Any] | BaseModel) -> MessageSignals:
    """
    Build MessageSignals from a raw message mapping or RawMessageIn.

    Raises SignalError when sender/recipient addresses or the ML score are
    missing or malformed; everything else has a safe default.
    """
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, Mapping):
        raise SignalError(f"raw message must be a mapping, got {type(raw).__name__}")

    display_from_addr, sender = _parse_address(raw.get("from_address"), "from_address")
    _, recipient = _parse_address(raw.get("to_address"), "to_address")

    body_text = _text(raw.get("body_text"))
    body_html = _text(raw.get("body_html"))
    if not body_text and body_html:
        body_text = _html_to_text(body_html)

    explicit_urls = raw.get("urls")
    if explicit_urls is not None:
        if not isinstance(explicit_urls, (list, tuple)):
            raise SignalError(f"urls must be a list, got {type(explicit_urls).__name__}", field="urls")
        urls = _dedupe([_text(u) for u in explicit_urls if _text(u)])
    else:
        urls = _dedupe(_urls_in_text(body_text) + _urls_in_text(body_html))

    headers = raw.get("headers") or {}
    if not isinstance(headers, Mapping):
        raise SignalError("headers must be a mapping", field="headers")

    age = raw.get("sender_domain_age_days")
    if age is not None:
        try:
            age = int(age)
        except (TypeError, ValueError) as e:
            raise SignalError(f"sender_domain_age_days must be an integer: {age!r}",
                              field="sender_domain_age_days") from e

    return MessageSignals(
        message_id=_text(raw.get("message_id")),
        sender_address=sender,
        sender_display=_text(raw.get("from_display")) or display_from_addr,
        sender_domain=_extract_domain(sender),
        recipient=recipient,
        subject=_text(raw.get("subject")),
        body_text=body_text,
        has_body_text=bool(_text(raw.get("body_text"))),
        has_body_html=bool(body_html),
        source_ip=_text(raw.get("source_ip")),
        attachments=_attachments(raw.get("attachments")),
        urls=urls,
        url_hosts=_dedupe([_host_of(u) for u in urls if _host_of(u)]),
        spf_pass=_auth_passed(raw.get("spf_pass")),
        dkim_pass=_auth_passed(raw.get("dkim_pass")),
        dmarc_pass=_auth_passed(raw.get("dmarc_pass")),
        ml_score=_ml_score(raw.get("ml_score")),
        headers=tuple(sorted((str(k).lower(), _text(v)) for k, v in headers.items())),
        sender_domain_age_days=age,
    )
