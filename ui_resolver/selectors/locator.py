# ui_resolver/selectors/locator.py
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Pattern, Union

from playwright.sync_api import Locator, Page

from ui_resolver.utils.logger import get_logger

log = get_logger(__name__)


_ROLE_RE = re.compile(r"^role=([^\[\s]+)(?:\[(.+)\])?$", re.IGNORECASE)
_NAME_RE = re.compile(r"""name=(/.+/[a-z]*|".+"|'.+')""", re.IGNORECASE)

# JS-style regex flags that have a Python equivalent; the rest (g, u, y) are ignored
_FLAG_MAP = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL}

# Playwright reads timeout=0 as "wait forever"
MIN_WAIT_MS = 1


@dataclass(frozen=True)
class RoleSelector:
    role: str
    name: Optional[Union[str, Pattern[str]]] = None

    def describe(self) -> str:
        if self.name is None:
            return f"role={self.role}"
        if isinstance(self.name, re.Pattern):
            flags = "".join(f for f, bit in _FLAG_MAP.items() if self.name.flags & bit)
            name = f"/{self.name.pattern}/{flags}"
        else:
            name = f'"{self.name}"'
        return f"role={self.role}[name={name}]"


@dataclass(frozen=True)
class QuerySelector:
    raw: str

    def describe(self) -> str:
        return self.raw


Selector = Union[RoleSelector, QuerySelector]


def _parse_name_matcher(raw: str) -> Union[str, Pattern[str]]:
    """
    `/pattern/flags` → compiled pattern, `"text"` / `'text'` → literal text.
    """
    if raw.startswith("/"):
        end = raw.rfind("/")
        pattern, flags = raw[1:end], raw[end + 1:]
        py_flags = 0
        for f in flags.lower():
            py_flags |= _FLAG_MAP.get(f, 0)
        return re.compile(pattern, py_flags)
    return re.sub(r"^['\"]|['\"]$", "", raw)


def parse_selector(raw: str) -> Selector:
    """
    Classify one candidate string.

    - ``role=button``                      → RoleSelector("button")
    - ``role=button[name="Submit"]``       → RoleSelector("button", "Submit")
    - ``role=textbox[name=/first name/i]`` → RoleSelector("textbox", re.compile(..., re.I))
    - anything else                        → QuerySelector(raw), handed to page.locator()

    Raises ValueError when a `/pattern/` matcher is not a valid regular expression.
    """
    value = (raw or "").strip()
    m = _ROLE_RE.match(value) if value.lower().startswith("role=") else None
    if not m:
        return QuerySelector(value)

    role, options = m.group(1), m.group(2)
    name = None
    if options:
        nm = _NAME_RE.search(options)
        if nm:
            try:
                name = _parse_name_matcher(nm.group(1))
            except re.error as e:
                raise ValueError(f"invalid name pattern in {value!r}: {e}") from e
    return RoleSelector(role=role, name=name)


def build_locator(root: Union[Page, Locator], selector: Selector, *, first: bool = True) -> Locator:
    """
    Turn a parsed selector into a Locator under `root` (a page or a scoped
    container). Narrows to the first match unless `first=False` (enumeration).
    """
    if isinstance(selector, RoleSelector):
        kwargs = {}
        if selector.name is not None:
            kwargs["name"] = selector.name
        loc = root.get_by_role(selector.role, **kwargs)  # type: ignore[arg-type]
    else:
        loc = root.locator(selector.raw)
    return loc.first if first else loc


def wait_for_state(loc: Locator, state: str, timeout_ms: int) -> Locator:
    """
    Wait for a locator to reach a given state and return it.
    state ∈ {"attached","detached","visible","hidden"}
    Non-positive timeouts are clamped to MIN_WAIT_MS so a wait is always bounded.
    """
    loc.wait_for(state=state, timeout=max(MIN_WAIT_MS, int(timeout_ms)))  # type: ignore[arg-type]
    return loc


def wait_attached_visible(loc: Locator, timeout_ms: int) -> Locator:
    """Both gates, same timeout each: attached to the DOM, then visible."""
    wait_for_state(loc, "attached", timeout_ms)
    return wait_for_state(loc, "visible", timeout_ms)
