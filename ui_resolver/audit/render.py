# ui_resolver/audit/render.py
from __future__ import annotations

"""Audit renderers
------------------
Fixed-width text tables for per-step attachments and the markdown run
summary, plus a rich table view used by the CLI. Works on plain event
dicts so persisted summaries render the same way as live ones.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping

from rich.table import Table

TABLE_HEADER = (
    "Element Key          | Result    | Used | Total | Notes\n"
    "---------------------+-----------+------+-------+----------------------------"
)


def _as_dict(event: Any) -> Mapping[str, Any]:
    return event.as_dict() if hasattr(event, "as_dict") else event


def _resolve_rows(events: Iterable[Any]) -> List[str]:
    rows = []
    for e in map(_as_dict, events):
        if e.get("type") != "resolve":
            continue
        key = str(e.get("key") or "").ljust(20)[:20]
        res = str(e.get("mode") or "").ljust(9)[:9]
        used = str(e.get("usedIndex") if e.get("usedIndex") is not None else "-").ljust(4)
        tot = str(e.get("total") if e.get("total") is not None else "-").ljust(5)
        rows.append(f"{key} | {res} | {used} | {tot} | ")
    return rows


def counters_header(snapshot: Any) -> str:
    c = snapshot.counters
    return (
        f"Audit counters so far → PRIMARY={c['PRIMARY']} | HEALED={c['HEALED']} | "
        f"HEALER={c['HEALER']} | FALLBACK={c['FALLBACK']} | FAIL={c['FAIL']}"
    )


def build_step_table(events: Iterable[Any], *, max_rows: int = 50) -> str:
    rows = _resolve_rows(events)
    if len(rows) > max_rows:
        rows = rows[:max_rows] + [f"... ({len(rows) - max_rows} more)"]
    return TABLE_HEADER + "\n" + ("\n".join(rows) if rows else "(no resolve events)")


def build_plain_summary(document: Mapping[str, Any]) -> str:
    """Markdown-friendly counts block + full-run resolve table."""
    counts = document.get("counts", {})
    block = (
        f"Primary: {counts.get('primary', 0)}\n"
        f"Healed: {counts.get('healed', 0)}\n"
        f"Healer: {counts.get('healer', 0)}\n"
        f"Fallback: {counts.get('fallback', 0)}\n"
        f"Failed: {counts.get('failed', 0)}\n"
    )
    rows = _resolve_rows(document.get("events", []))
    body = "\n".join(rows) if rows else "(no audit events captured)"
    return f"{block}\n{TABLE_HEADER}\n{body}\n"


def load_summary(path: Path | str) -> Dict[str, Any]:
    """Read a persisted audit-summary.json."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict) or "counts" not in data:
        raise ValueError(f"{path} is not an audit summary (missing 'counts')")
    return data


def rich_summary_table(document: Mapping[str, Any]) -> Table:
    counts = document.get("counts", {})
    table = Table(
        title=f"Locator audit  ok={counts.get('ok', 0)}  failed={counts.get('failed', 0)}  "
              f"total={counts.get('totalResolves', 0)}",
    )
    for col in ("Key", "Mode", "Used", "Total"):
        table.add_column(col)
    for e in document.get("events", []):
        if e.get("type") != "resolve":
            continue
        used = e.get("usedIndex")
        table.add_row(
            str(e.get("key") or ""),
            str(e.get("mode") or ""),
            "-" if used is None else str(used),
            str(e.get("total", "-")),
        )
    return table
