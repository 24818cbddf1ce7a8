# ui_resolver/core/actions.py
from __future__ import annotations

"""Action facade
----------------
Registry-keyed UI verbs (click/fill/select/check/assert) on top of the
candidate resolver. Each verb resolves its key (optionally inside a
container set with `within`), gates on visibility, captures a short DOM
snippet, acts, and records an action-specific audit event.
"""

import re
from typing import List, Optional, Sequence, Union

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Locator, Page

from ui_resolver.audit.trail import AuditTrail
from ui_resolver.core.errors import CompoundActionError, LocatorError
from ui_resolver.core.registry import Registry
from ui_resolver.core.resolver import Attach, CandidateResolver, FallbackFactory, Resolution, SelfHealer, safe_attach
from ui_resolver.selectors.locator import build_locator, parse_selector, wait_for_state
from ui_resolver.utils.config import Settings, get_settings
from ui_resolver.utils.logger import get_logger, log_with_context
from ui_resolver.utils.timing import measure, retry_until

# Public API
__all__ = ["ActionFacade"]

VALIDATION_SELECTOR = ".has-error .help-block, .ng-invalid + .help-block, .error, .validation-error, .alert-danger"

BORROWERS_HEADER = "Borrowers.header"
BORROWERS_SECTION = "Borrowers.section"
BORROWERS_OPEN_KEYS = ("Borrowers.panel.open", "Borrowers.addBorrower")
BORROWERS_MODAL = "Borrowers.modal.root"
BORROWERS_TABS = "Borrowers.tabs.labels"
BORROWERS_ACTIVE_PANE = "Borrowers.tab.activePane"

_TAB_NUMBERING = re.compile(r"^\d+\s*[.)\-]?\s*")
_EMPTY_SELECT_VALUES = {"", "object:null"}


class ActionFacade:
    """Single-verb UI API used by step definitions."""

    def __init__(
        self,
        page: Page,
        registry: Registry,
        audit: AuditTrail,
        *,
        healer: Optional[SelfHealer] = None,
        attach: Optional[Attach] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self.settings = settings or get_settings()
        self.resolver = CandidateResolver(page, registry, audit, healer=healer, attach=attach, settings=self.settings)
        self.page = page
        self.registry = registry
        self.audit = audit
        self.attach = attach
        self.log = get_logger(__name__)
        self._container: Optional[str] = None

    # ---------- scoping ----------

    def within(self, container_key: str) -> "ActionFacade":
        """Narrow the next lookup to a container key. Cleared after one use."""
        self._container = container_key
        return self

    def within_active_borrower(self) -> "ActionFacade":
        return self.within(BORROWERS_ACTIVE_PANE)

    # ---------- internals ----------

    def _url(self) -> str:
        try:
            return self.page.url
        except Exception:
            return "<unknown>"

    def _say(self, message: str) -> None:
        safe_attach(self.attach, message)

    def _timeout(self, timeout_ms: Optional[int]) -> int:
        return self.settings.ACTION_TIMEOUT_MS if timeout_ms is None else timeout_ms

    def by_key(self, key: str, fallback: Optional[FallbackFactory] = None) -> Resolution:
        return self.resolver.by_key(key, fallback=fallback)

    def _loc(self, key: str) -> Locator:
        spec = self.registry.spec_for(key)
        container, self._container = self._container, None
        if container:
            scope_loc = self.resolver.by_key(container).locator
            resolution = self.resolver.resolve(spec, scope=lambda: scope_loc)
        else:
            resolution = self.resolver.resolve(spec)
        self.audit.record_locate(
            key,
            candidate_count=resolution.outcome.total,
            resolved=resolution.outcome.ok,
            url=self._url(),
        )
        return resolution.locator

    def _loc_all(self, key: str, probe_ms: int = 200) -> Optional[Locator]:
        """All matches (not first-only) of the first candidate that is attached."""
        for candidate in self.registry.spec_for(key).candidates:
            try:
                sel = parse_selector(candidate)
                wait_for_state(build_locator(self.page, sel), "attached", probe_ms)
            except (PlaywrightError, ValueError):
                continue
            return build_locator(self.page, sel, first=False)
        return None

    def _gate(self, loc: Locator, timeout_ms: Optional[int]) -> Locator:
        return wait_for_state(loc, "visible", self._timeout(timeout_ms))

    def _snippet(self, loc: Locator) -> Optional[str]:
        try:
            html = loc.evaluate("el => el.outerHTML")
        except Exception:
            return None
        return str(html)[: self.settings.SNIPPET_MAX_CHARS] if html else None

    # ---------- verbs ----------

    @measure("click")
    def click(self, key: str, *, wait_visible: bool = True, timeout_ms: Optional[int] = None) -> None:
        loc = self._loc(key)
        if wait_visible:
            self._gate(loc, timeout_ms)
        snippet = self._snippet(loc)
        loc.click()
        self.audit.record_action("click", key, url=self._url(), snippet=snippet)
        self._say(f"Clicked {key}")

    @measure("fill")
    def fill(self, key: str, value: object, *, timeout_ms: Optional[int] = None) -> None:
        loc = self._gate(self._loc(key), timeout_ms)
        snippet = self._snippet(loc)
        loc.fill("" if value is None else str(value))
        self.audit.record_action("fill", key, url=self._url(), value=value, snippet=snippet)
        self._say(f"Filled {key}")

    @measure("select")
    def select_by_label(self, key: str, label: str, *, timeout_ms: Optional[int] = None) -> None:
        loc = self._gate(self._loc(key), timeout_ms)
        snippet = self._snippet(loc)
        loc.select_option(label=str(label))
        self.audit.record_action("select", key, url=self._url(), label=label, snippet=snippet)
        self._say(f'Selected "{label}" in {key}')

    @measure("check")
    def check(self, key: str, *, timeout_ms: Optional[int] = None) -> bool:
        """Check a box if it is not already checked. Returns True when state changed."""
        loc = self._gate(self._loc(key), timeout_ms)
        snippet = self._snippet(loc)
        changed = False
        if not loc.is_checked():
            loc.check()
            changed = True
        self.audit.record_action(
            "check", key, url=self._url(), checked="checked" if changed else "already-checked", snippet=snippet
        )
        self._say(f"Checked {key}" if changed else f"Already checked: {key}")
        return changed

    def expect_visible(self, key: str, timeout_ms: Optional[int] = None) -> Locator:
        loc = self._gate(self._loc(key), timeout_ms)
        self._say(f"Visible: {key}")
        return loc

    def text(self, key: str, *, timeout_ms: Optional[int] = None) -> str:
        loc = self._gate(self._loc(key), timeout_ms)
        return loc.text_content() or ""

    def read_value(self, key: str) -> str:
        """Current form value, trimmed; "" when the element has no readable value."""
        loc = self._loc(key)
        try:
            return (loc.input_value() or "").strip()
        except PlaywrightError:
            pass
        try:
            v = loc.evaluate("el => (el && 'value' in el) ? String(el.value || '') : ''")
            return str(v or "").strip()
        except PlaywrightError:
            return ""

    def fill_if_empty(self, key: str, value: object, *, timeout_ms: Optional[int] = None) -> bool:
        container = self._container
        if self.read_value(key):
            return False
        self._container = container
        self.fill(key, value, timeout_ms=timeout_ms)
        return True

    def select_if_empty(self, key: str, label: str, *, timeout_ms: Optional[int] = None) -> bool:
        container = self._container
        if self.read_value(key) not in _EMPTY_SELECT_VALUES:
            return False
        self._container = container
        self.select_by_label(key, label, timeout_ms=timeout_ms)
        return True

    # ---------- non-throwing probes ----------

    def exists(self, key: str, timeout_ms: Optional[int] = None) -> bool:
        """
        True when any candidate becomes visible (or at least attached) within
        the timeout. Never raises for absence; unknown keys still raise.
        """
        timeout = self.settings.EXISTS_TIMEOUT_MS if timeout_ms is None else timeout_ms
        for candidate in self.registry.spec_for(key).candidates:
            try:
                loc = self.resolver.locator_for(candidate)
            except ValueError:
                continue
            try:
                wait_for_state(loc, "visible", timeout)
                return True
            except PlaywrightError:
                pass
            try:
                wait_for_state(loc, "attached", min(600, timeout))
                return True
            except PlaywrightError:
                continue
        return False

    def is_open(self, key: str, timeout_ms: Optional[int] = None) -> bool:
        return self.exists(key, self.settings.PROBE_TIMEOUT_MS if timeout_ms is None else timeout_ms)

    def debug_candidates(self, key: str, timeout_ms: Optional[int] = None) -> str:
        """Attached/visible state of every candidate of `key`, attached to the sink and returned."""
        timeout = self.settings.DEBUG_TIMEOUT_MS if timeout_ms is None else timeout_ms
        lines = [f'Locator debug for key "{key}":']
        try:
            candidates = self.registry.spec_for(key).candidates
        except LocatorError as e:
            candidates = []
            lines.append(f"! spec lookup failed: {e}")
        for i, candidate in enumerate(candidates, start=1):
            try:
                loc = self.resolver.locator_for(candidate)
                wait_for_state(loc, "attached", timeout)
            except (PlaywrightError, ValueError):
                lines.append(f"- [{i}] MISSING :: {candidate}")
                continue
            try:
                count = build_locator(self.page, parse_selector(candidate), first=False).count()
            except PlaywrightError:
                count = "?"
            lines.append(f"- [{i}] ATTACHED ({count}) :: {candidate}")
            try:
                wait_for_state(loc, "visible", 200)
                lines.append("      ↳ VISIBLE")
            except PlaywrightError:
                lines.append("      ↳ not visible")
        msg = "\n".join(lines)
        self._say(msg)
        return msg

    # ---------- tabs ----------

    def list_tabs(self, key: str = BORROWERS_TABS) -> List[str]:
        tabs = self._loc_all(key)
        if tabs is None:
            return []
        try:
            return [s.strip() for s in tabs.all_text_contents()]
        except PlaywrightError:
            return []

    def select_tab(
        self,
        name_or_index: Union[str, int],
        *,
        key: str = BORROWERS_TABS,
        pane_key: Optional[str] = BORROWERS_ACTIVE_PANE,
        timeout_ms: Optional[int] = None,
    ) -> int:
        """
        Click a tab by 1-based index or by (case-insensitive, numbering-stripped)
        label. Unknown labels fall back to the first tab. Returns the 0-based index clicked.
        """
        tabs = self._loc_all(key)
        count = tabs.count() if tabs is not None else 0
        if count == 0:
            raise CompoundActionError(f'No tabs found for "{key}"', [self.debug_candidates(key)])

        idx = 0
        if isinstance(name_or_index, int):
            idx = max(1, min(count, name_or_index)) - 1
        else:
            want = str(name_or_index).strip().lower()
            for i in range(count):
                label = _TAB_NUMBERING.sub("", (tabs.nth(i).text_content() or "").strip().lower())
                if label == want or want in label:
                    idx = i
                    break

        tabs.nth(idx).click()
        if pane_key:
            try:
                self.expect_visible(pane_key, timeout_ms or self.settings.MODAL_CLOSE_TIMEOUT_MS)
            except (LocatorError, PlaywrightError) as e:
                self.log.debug(f"active pane not confirmed after selecting tab {idx + 1}: {e}")
        return idx

    # ---------- compound operations (bounded poll + bounded retry) ----------

    def _scroll_into_view(self, section_key: Optional[str]) -> None:
        try:
            if section_key and self.exists(section_key, 600):
                self.resolver.by_key(section_key).locator.scroll_into_view_if_needed()
            else:
                self.page.evaluate("() => window.scrollTo(0, 0)")
        except (LocatorError, PlaywrightError) as e:
            self.log.debug(f"scroll into view skipped: {e}")

    def ensure_open(
        self,
        trigger_key: str,
        open_keys: Sequence[str],
        *,
        section_key: Optional[str] = None,
    ) -> int:
        """
        Idempotently open a collapsible region: click `trigger_key`, then poll
        until any of `open_keys` exists; retry the click a bounded number of
        times. Returns the attempt that succeeded (0 when already open).
        """
        s = self.settings
        klog = log_with_context(self.log, key=trigger_key)

        def is_open() -> bool:
            return any(self.exists(k, s.PROBE_TIMEOUT_MS) for k in open_keys)

        if is_open():
            self._say(f"{trigger_key}: already open.")
            return 0

        self._scroll_into_view(section_key)

        def click_trigger() -> None:
            self.resolver.by_key(trigger_key).locator.click()

        try:
            attempt = retry_until(
                click_trigger,
                is_open,
                attempts=s.RETRY_ATTEMPTS,
                poll_ms=s.RETRY_POLL_MS,
                interval_ms=s.POLL_INTERVAL_MS,
                description=f"open {trigger_key}",
            )
        except TimeoutError as e:
            klog.warning(f"{trigger_key} did not open: {e}")
            diagnostics = [self.debug_candidates(k, s.PROBE_TIMEOUT_MS) for k in (trigger_key, *open_keys)]
            raise CompoundActionError(f"{trigger_key} did not open after {s.RETRY_ATTEMPTS} attempt(s)", diagnostics) from e

        self._say(f"{trigger_key}: open (attempt {attempt}).")
        return attempt

    def ensure_borrowers_open(self) -> int:
        return self.ensure_open(BORROWERS_HEADER, BORROWERS_OPEN_KEYS, section_key=BORROWERS_SECTION)

    def ensure_modal_saved(
        self,
        modal_key: str = BORROWERS_MODAL,
        *,
        timeout_ms: Optional[int] = None,
        tabs_key: Optional[str] = BORROWERS_TABS,
    ) -> None:
        """
        Wait for the modal to detach (save accepted). On timeout, collect the
        visible validation messages, record a failed `modal` event and raise.
        """
        timeout = self.settings.MODAL_CLOSE_TIMEOUT_MS if timeout_ms is None else timeout_ms
        modal = self._loc(modal_key)
        try:
            wait_for_state(modal, "detached", timeout)
        except PlaywrightError as e:
            try:
                texts = [t.strip() for t in self.page.locator(VALIDATION_SELECTOR).all_text_contents() if t.strip()]
            except PlaywrightError:
                texts = []
            details = " | ".join(texts) or "<none>"
            self.audit.record_action("modal", modal_key, action="close", ok=False, details=details, url=self._url())
            self._say(f"Modal did not close within {timeout}ms. Visible validation: {details}")
            raise CompoundActionError(
                "Modal did not close (likely validation or save failure).",
                [f"Visible validation: {details}", self.debug_candidates(modal_key, self.settings.PROBE_TIMEOUT_MS)],
            ) from e

        self.audit.record_action("modal", modal_key, action="close", ok=True, url=self._url())
        self._say("Modal closed (save presumed successful).")

        if tabs_key and tabs_key in self.registry.all_keys():
            names = [n for n in self.list_tabs(tabs_key) if n]
            if names:
                self.audit.record_action("tabs", tabs_key, names=names, url=self._url())
                self._say(f"Tabs now: {' | '.join(names)}")
