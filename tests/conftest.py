import json
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest
from playwright.sync_api import TimeoutError as PWTimeoutError

from ui_resolver.audit.trail import AuditTrail
from ui_resolver.core.registry import Registry
from ui_resolver.utils.config import Settings


# ---------- In-memory stand-ins for Playwright Page / Locator ----------


@dataclass
class FakeElement:
    text: str = ""
    value: str = ""
    visible: bool = True
    attached: bool = True
    checked: bool = False
    html: str = "<div></div>"
    role: Optional[str] = None
    name: Optional[str] = None
    options: List[str] = field(default_factory=list)
    children: Dict[str, List["FakeElement"]] = field(default_factory=dict)
    clicks: int = 0
    on_click: Optional[Callable[[], None]] = None

    def add(self, selector: str, **kw) -> "FakeElement":
        el = FakeElement(**kw)
        self.children.setdefault(selector, []).append(el)
        return el


def _role_match(elements, role, name) -> List[FakeElement]:
    out = []
    for e in elements:
        if e.role != role:
            continue
        if name is None:
            out.append(e)
        elif isinstance(name, re.Pattern):
            if name.search(e.name or ""):
                out.append(e)
        elif name.lower() in (e.name or "").lower():
            out.append(e)
    return out


class FakeLocator:
    def __init__(self, page: "FakePage", resolve: Callable[[], List[FakeElement]], desc: str, index: Optional[int] = None):
        self.page = page
        self._resolve = resolve
        self.desc = desc
        self.index = index

    def _all(self) -> List[FakeElement]:
        els = [e for e in self._resolve() if e.attached]
        if self.index is not None:
            return els[self.index: self.index + 1]
        return els

    def _one(self) -> FakeElement:
        els = self._all()
        if not els:
            raise PWTimeoutError(f"Timeout waiting for {self.desc}")
        return els[0]

    @property
    def first(self) -> "FakeLocator":
        return FakeLocator(self.page, self._resolve, self.desc, 0)

    def nth(self, i: int) -> "FakeLocator":
        return FakeLocator(self.page, self._resolve, self.desc, i)

    def count(self) -> int:
        return len(self._all())

    def wait_for(self, state: str = "visible", timeout: Optional[float] = None) -> None:
        self.page.probes.append((self.desc, state))
        self.page.wait_timeouts.append(timeout)
        if self.page.on_wait:
            self.page.on_wait(self.desc, state)
        els = self._all()
        if state == "attached":
            ok = bool(els)
        elif state == "visible":
            ok = bool(els) and els[0].visible
        elif state == "detached":
            ok = not els
        else:
            ok = not els or not els[0].visible
        if not ok:
            raise PWTimeoutError(f"Timeout {timeout}ms exceeded waiting for {self.desc} to be {state}")

    def click(self) -> None:
        el = self._one()
        el.clicks += 1
        if el.on_click:
            el.on_click()

    def fill(self, value: str) -> None:
        self._one().value = value

    def input_value(self) -> str:
        return self._one().value

    def select_option(self, label: Optional[str] = None) -> List[str]:
        el = self._one()
        if label not in el.options:
            raise PWTimeoutError(f"option {label!r} not found in {self.desc}")
        el.value = label
        return [label]

    def is_checked(self) -> bool:
        return self._one().checked

    def check(self) -> None:
        self._one().checked = True

    def text_content(self) -> Optional[str]:
        return self._one().text

    def all_text_contents(self) -> List[str]:
        return [e.text for e in self._all()]

    def evaluate(self, expression: str):
        el = self._one()
        if "outerHTML" in expression:
            return el.html
        return el.value

    def scroll_into_view_if_needed(self) -> None:
        self._one()

    def locator(self, selector: str) -> "FakeLocator":
        return FakeLocator(
            self.page,
            lambda: [c for e in self._all()[:1] for c in e.children.get(selector, [])],
            f"{self.desc} >> {selector}",
        )

    def get_by_role(self, role: str, name=None) -> "FakeLocator":
        return FakeLocator(
            self.page,
            lambda: _role_match([c for e in self._all()[:1] for cs in e.children.values() for c in cs], role, name),
            f"{self.desc} >> role={role}",
        )


class FakePage:
    def __init__(self, url: str = "https://app.test/loan/42"):
        self.url = url
        self.dom: Dict[str, List[FakeElement]] = {}
        self.roles: List[FakeElement] = []
        self.probes: List[tuple] = []
        self.wait_timeouts: List[Optional[float]] = []
        self.evaluated: List[str] = []
        self.on_wait: Optional[Callable[[str, str], None]] = None

    def add(self, selector: str, **kw) -> FakeElement:
        el = FakeElement(**kw)
        self.dom.setdefault(selector, []).append(el)
        return el

    def add_role(self, role: str, name: Optional[str] = None, **kw) -> FakeElement:
        el = FakeElement(role=role, name=name, **kw)
        self.roles.append(el)
        return el

    def locator(self, selector: str) -> FakeLocator:
        return FakeLocator(self, lambda: list(self.dom.get(selector, [])), selector)

    def get_by_role(self, role: str, name=None) -> FakeLocator:
        return FakeLocator(self, lambda: _role_match(self.roles, role, name), f"role={role}")

    def evaluate(self, script: str, *args):
        self.evaluated.append(script)
        return None


# ---------- fixtures ----------


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(
        DEFAULT_TIMEOUT_MS=50,
        HEALER_TIMEOUT_MS=50,
        ACTION_TIMEOUT_MS=50,
        EXISTS_TIMEOUT_MS=50,
        DEBUG_TIMEOUT_MS=50,
        RETRY_ATTEMPTS=2,
        RETRY_POLL_MS=30,
        POLL_INTERVAL_MS=5,
        PROBE_TIMEOUT_MS=20,
        MODAL_CLOSE_TIMEOUT_MS=50,
        AUDIT_ENABLED=True,
        AUDIT_ATTACH_JSON=False,
        AUDIT_DIR=tmp_path / "audit",
        LOCATORS_PATH=None,
    )


@pytest.fixture
def page() -> FakePage:
    return FakePage()


@pytest.fixture
def audit(settings: Settings) -> AuditTrail:
    return AuditTrail(settings)


@pytest.fixture
def make_registry(tmp_path: Path, settings: Settings):
    """Write a JSON registry document and return a Registry bound to it."""

    def _make(data: dict, name: str = "registry.json") -> Registry:
        fp = tmp_path / name
        fp.write_text(json.dumps(data), encoding="utf-8")
        return Registry(fp, settings=settings)

    return _make


@pytest.fixture
def attached_messages() -> List[str]:
    return []
