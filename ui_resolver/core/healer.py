# ui_resolver/core/healer.py
from __future__ import annotations

"""Heuristic selector healer
----------------------------
Optional SelfHealer: when every literal candidate has failed, derive looser
queries from those candidates (attribute fragments, bare roles, accessible
names as text) and pick the best visible match. Scoring only happens here;
literal candidates are never scored.
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from playwright.sync_api import Locator, Page

from ui_resolver.selectors.locator import RoleSelector, parse_selector, wait_for_state
from ui_resolver.utils.logger import get_logger

_ID_RE = re.compile(r"#([A-Za-z][\w-]*)")
_ATTR_RE = re.compile(r"""\[(name|placeholder|aria-label|data-testid|formcontrolname|ng-model)\s*[*^$|~]?=\s*['"]?([^'"\]]+)['"]?\]""")
_CLASS_RE = re.compile(r"\.([A-Za-z][\w-]*)")
# generated suffixes such as "firstName-123" / "btn_4f2a" are the usual drift
_VOLATILE_TAIL = re.compile(r"[-_]?(?:\d+|[0-9a-f]{4,})$", re.IGNORECASE)


@dataclass(frozen=True)
class HealCandidate:
    query: str
    reason: str
    rank: int


def _stem(token: str) -> str:
    return _VOLATILE_TAIL.sub("", token) or token


def derive_queries(candidates: Sequence[str]) -> List[HealCandidate]:
    """Looser selectors derived from the literal candidates, most specific first."""
    out: List[HealCandidate] = []
    seen = set()

    def add(query: str, reason: str) -> None:
        if query not in seen:
            seen.add(query)
            out.append(HealCandidate(query=query, reason=reason, rank=len(out)))

    for raw in candidates:
        try:
            sel = parse_selector(raw)
        except ValueError:
            continue
        if isinstance(sel, RoleSelector):
            if isinstance(sel.name, str) and sel.name:
                add(f"text={sel.name}", "accessible_name_text")
            add(f"role={sel.role}", "role_without_name")
            continue
        for ident in _ID_RE.findall(sel.raw):
            add(f'[id*="{_stem(ident)}"]', "id_fragment")
        for attr, value in _ATTR_RE.findall(sel.raw):
            add(f'[{attr}*="{_stem(value.strip())}"]', f"{attr}_fragment")
        for cls in _CLASS_RE.findall(sel.raw):
            add(f".{cls}", "class_downgrade")
    return out


class AttributeHealer:
    """
    SelfHealer implementation. Each derived query is scored:
      - a unique visible match beats several matches
      - earlier-derived queries (closer to the authored candidates) beat later ones
    """

    def __init__(self, *, max_probes: int = 12) -> None:
        self.max_probes = max_probes
        self.log = get_logger(__name__)

    def _score(self, page: Page, hc: HealCandidate, timeout_ms: int) -> Optional[tuple[float, Locator]]:
        loc = page.locator(hc.query)
        try:
            count = loc.count()
            if count == 0:
                return None
            first = loc.first
            wait_for_state(first, "visible", timeout_ms)
        except Exception:
            return None
        score = (1.0 if count == 1 else 0.5) - hc.rank * 0.01
        return score, first

    def attempt(self, candidates: Sequence[str], page: Page, *, timeout_ms: int) -> Optional[Locator]:
        derived = derive_queries(candidates)[: self.max_probes]
        if not derived:
            return None
        per_probe = max(50, timeout_ms // max(1, len(derived)))
        best: Optional[tuple[float, Locator, HealCandidate]] = None
        for hc in derived:
            scored = self._score(page, hc, per_probe)
            if scored and (best is None or scored[0] > best[0]):
                best = (scored[0], scored[1], hc)
                if hc.rank == 0 and scored[0] >= 1.0:
                    break
        if best is None:
            self.log.debug(f"healer: no match among {len(derived)} derived queries")
            return None
        self.log.info(f"healer: matched via {best[2].reason} (score {best[0]:.2f})")
        return best[1]
