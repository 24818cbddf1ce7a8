# ui_resolver/audit/trail.py
from __future__ import annotations

"""Audit trail
--------------
Append-only event log for locator resolution and UI actions, plus running
counters by outcome mode. Sensitive values are masked before an event is
stored; raw selector strings are never stored at all.
"""

import json
import re
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Callable, Dict, List, Mapping, Optional

from ui_resolver.audit.render import build_plain_summary, build_step_table, counters_header
from ui_resolver.utils.config import Settings, get_settings
from ui_resolver.utils.logger import get_logger

if TYPE_CHECKING:
    from ui_resolver.core.resolver import ResolutionOutcome

MODES = ("PRIMARY", "HEALED", "HEALER", "FALLBACK", "FAIL")
EVENT_TYPES = ("resolve", "locate", "click", "fill", "select", "check", "modal", "tabs")
ACTION_TYPES = EVENT_TYPES[2:]

REDACTED = "***"
_SECRET_RE = re.compile(r"password|pass|secret|token", re.IGNORECASE)
_EMAIL_RE = re.compile(r"email", re.IGNORECASE)
_EMAIL_VALUE_RE = re.compile(r"^(.{2}).+(@.*)$", re.DOTALL)
_SELECTOR_FIELDS = {"selector", "used_selector", "usedSelector", "candidates"}
_VALUE_ATTR_RE = re.compile(r"""(\bvalue\s*=\s*)(["'])(.*?)\2""", re.IGNORECASE | re.DOTALL)


def _utc_iso() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def mask(name: str, value: Any) -> Any:
    """
    Mask `value` according to the field/key `name`:
      - password / pass / secret / token → "***"
      - email → first two characters + "***" + "@domain"
    """
    if value is None or not name:
        return value
    if _SECRET_RE.search(name):
        return REDACTED
    if _EMAIL_RE.search(name):
        m = _EMAIL_VALUE_RE.match(str(value))
        return f"{m.group(1)}{REDACTED}{m.group(2)}" if m else REDACTED
    return value


def mask_snippet(key: Optional[str], snippet: str) -> str:
    """
    DOM snippets of sensitive elements carry the same secret in their markup.
    Secret keys drop the snippet entirely; email keys mask every `value=` attribute.
    """
    if not key:
        return snippet
    if _SECRET_RE.search(key):
        return REDACTED
    if _EMAIL_RE.search(key):
        return _VALUE_ATTR_RE.sub(lambda m: f"{m.group(1)}{m.group(2)}{mask(key, m.group(3))}{m.group(2)}", snippet)
    return snippet


@dataclass(frozen=True)
class AuditEvent:
    id: int
    ts: str
    type: str
    key: Optional[str]
    fields: Mapping[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "ts": self.ts, "type": self.type, "key": self.key, **dict(self.fields)}


@dataclass(frozen=True)
class Counts:
    primary: int
    healed: int
    healer: int
    fallback: int
    failed: int

    @property
    def ok(self) -> int:
        return self.primary + self.healed + self.healer + self.fallback

    @property
    def total_resolves(self) -> int:
        return self.ok + self.failed

    def as_dict(self) -> Dict[str, int]:
        return {
            "primary": self.primary,
            "healed": self.healed,
            "healer": self.healer,
            "fallback": self.fallback,
            "failed": self.failed,
            "ok": self.ok,
            "totalResolves": self.total_resolves,
        }


@dataclass(frozen=True)
class AuditSnapshot:
    counters: Mapping[str, int]
    counts: Counts
    total_events: int
    generated_at: str

    @property
    def total_resolves(self) -> int:
        return self.counts.total_resolves

    def as_dict(self) -> Dict[str, Any]:
        return {
            "counters": dict(self.counters),
            "counts": self.counts.as_dict(),
            "totalEvents": self.total_events,
            "generatedAt": self.generated_at,
        }


class AuditTrail:
    """
    Full-run buffer + per-step buffer + counters.

    One instance per run (or per scenario, merged at run end with `merge`).
    Pass it explicitly to every component that records into it.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.enabled = self.settings.AUDIT_ENABLED
        self.verbose = self.settings.AUDIT_ATTACH_JSON
        self.log = get_logger(__name__)
        self._lock = threading.Lock()
        self._next_id = 1
        self._events: List[AuditEvent] = []
        self._step_events: List[AuditEvent] = []
        self._counters: Dict[str, int] = {m: 0 for m in MODES}

    # ---------- lifecycle ----------

    def reset(self) -> None:
        """Start of run: clear both buffers and zero the counters."""
        with self._lock:
            self._events = []
            self._step_events = []
            self._counters = {m: 0 for m in MODES}
            self._next_id = 1

    @property
    def events(self) -> List[AuditEvent]:
        return list(self._events)

    @property
    def step_events(self) -> List[AuditEvent]:
        return list(self._step_events)

    # ---------- internals ----------

    def _sanitize(self, key: Optional[str], payload: Mapping[str, Any]) -> Dict[str, Any]:
        clean: Dict[str, Any] = {}
        for name, value in payload.items():
            if name in _SELECTOR_FIELDS:
                continue
            if name == "value" and key:
                value = mask(key, value)
            if name == "snippet" and isinstance(value, str):
                value = mask_snippet(key, value)[: self.settings.SNIPPET_MAX_CHARS]
            clean[name] = mask(name, value)
        return clean

    def _push(self, type_: str, key: Optional[str], payload: Mapping[str, Any]) -> Optional[int]:
        if not self.enabled:
            return None
        fields = self._sanitize(key, payload)
        with self._lock:
            event = AuditEvent(id=self._next_id, ts=_utc_iso(), type=type_, key=key,
                               fields=MappingProxyType(fields))
            self._next_id += 1
            self._events.append(event)
            self._step_events.append(event)
        return event.id

    # ---------- recording ----------

    def record(self, key: str, outcome: "ResolutionOutcome") -> Optional[int]:
        """
        Count one resolution and append a `resolve` event.
        The used selector stays out of the stream; only index/total/mode are kept.
        """
        mode = str(getattr(outcome.mode, "value", outcome.mode)).upper()
        with self._lock:
            if mode in self._counters:
                self._counters[mode] += 1
        return self._push("resolve", key, {"usedIndex": outcome.used_index, "total": outcome.total, "mode": mode})

    def record_locate(self, key: str, *, candidate_count: int, resolved: bool, url: Optional[str] = None) -> Optional[int]:
        return self._push("locate", key, {"url": url, "candidateCount": candidate_count, "resolved": resolved})

    def record_action(self, type_: str, key: Optional[str], **payload: Any) -> Optional[int]:
        """click / fill / select / check / modal / tabs events, masked and truncated."""
        if type_ not in ACTION_TYPES:
            raise ValueError(f"unknown audit action type: {type_!r}")
        return self._push(type_, key, payload)

    # ---------- views ----------

    def snapshot(self) -> AuditSnapshot:
        with self._lock:
            c = dict(self._counters)
            total = len(self._events)
        counts = Counts(
            primary=c["PRIMARY"],
            healed=c["HEALED"],
            healer=c["HEALER"],
            fallback=c["FALLBACK"],
            failed=c["FAIL"],
        )
        return AuditSnapshot(counters=MappingProxyType(c), counts=counts, total_events=total,
                             generated_at=_utc_iso())

    def to_document(self) -> Dict[str, Any]:
        return {**self.snapshot().as_dict(), "events": [e.as_dict() for e in self._events]}

    # ---------- output ----------

    def flush_step(self, sink: Optional[Callable[[str], Any]]) -> Optional[str]:
        """
        Send this step's events to `sink` (table, or JSON when verbose) and
        clear the step buffer. The full-run buffer is left untouched.
        """
        if not self.enabled or sink is None:
            return None
        with self._lock:
            step = list(self._step_events)
            self._step_events = []
        body = (
            json.dumps([e.as_dict() for e in step], indent=2, default=str)
            if self.verbose
            else build_step_table(step, max_rows=self.settings.AUDIT_TABLE_MAX_ROWS)
        )
        text = f"{counters_header(self.snapshot())}\nUI Audit ({len(step)} events)\n{body}"
        try:
            sink(text)
        except Exception as e:
            self.log.debug(f"audit flush sink failed: {e!r}")
        return text

    def persist(self, destination: Optional[Path | str] = None) -> Optional[Path]:
        """Write full-run events + snapshot as JSON. Never raises."""
        path = Path(destination) if destination else self.settings.AUDIT_DIR / "audit-summary.json"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(self.to_document(), indent=2, default=str), encoding="utf-8")
            return path
        except Exception as e:
            self.log.warning(f"Audit persist to {path} failed: {e}")
            return None

    def write_summary(self, out_dir: Optional[Path | str] = None) -> Optional[Path]:
        """End of run: audit-summary.json + audit-summary.md under `out_dir`. Never raises."""
        root = Path(out_dir) if out_dir else self.settings.AUDIT_DIR
        try:
            root.mkdir(parents=True, exist_ok=True)
            doc = self.to_document()
            (root / "audit-summary.json").write_text(json.dumps(doc, indent=2, default=str), encoding="utf-8")
            (root / "audit-summary.md").write_text(build_plain_summary(doc), encoding="utf-8")
            return root
        except Exception as e:
            self.log.warning(f"writeAuditSummary to {root} failed: {e}")
            return None

    # ---------- per-scenario confinement ----------

    @classmethod
    def merge(cls, *trails: "AuditTrail", settings: Optional[Settings] = None) -> "AuditTrail":
        """Combine per-scenario trails into one run-level trail (counters summed, events renumbered by time)."""
        merged = cls(settings=settings or (trails[0].settings if trails else None))
        events: List[AuditEvent] = []
        for t in trails:
            for m in MODES:
                merged._counters[m] += t._counters[m]
            events.extend(t._events)
        events.sort(key=lambda e: e.ts)
        for e in events:
            merged._events.append(AuditEvent(id=merged._next_id, ts=e.ts, type=e.type, key=e.key, fields=e.fields))
            merged._next_id += 1
        return merged


__all__ = [
    "ACTION_TYPES",
    "AuditEvent",
    "AuditSnapshot",
    "AuditTrail",
    "Counts",
    "EVENT_TYPES",
    "MODES",
    "REDACTED",
    "mask",
    "mask_snippet",
]
