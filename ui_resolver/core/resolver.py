# ui_resolver/core/resolver.py
from __future__ import annotations

"""Candidate resolution
-----------------------
Turns an ElementSpec into one Playwright locator: literal candidates in
order, then the optional heuristic healer, then the caller's fallback.
Every call yields exactly one ResolutionOutcome and one audit record.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, List, Optional, Protocol, Sequence

from playwright.sync_api import Locator, Page

from ui_resolver.audit.trail import AuditTrail
from ui_resolver.core.errors import NoCandidateError, NoMatchError
from ui_resolver.core.registry import ElementSpec, Registry
from ui_resolver.selectors.locator import build_locator, parse_selector, wait_attached_visible
from ui_resolver.utils.config import Settings, get_settings
from ui_resolver.utils.logger import get_logger, log_resolution

Attach = Callable[[str], Any]
ScopeProducer = Callable[[], Locator]
FallbackFactory = Callable[[], Optional[Locator]]


class Mode(str, Enum):
    PRIMARY = "PRIMARY"
    HEALED = "HEALED"
    HEALER = "HEALER"
    FALLBACK = "FALLBACK"
    FAIL = "FAIL"


@dataclass(frozen=True)
class ResolutionOutcome:
    key: str
    mode: Mode
    total: int
    used_index: Optional[int] = None  # 1-based, PRIMARY/HEALED only
    used_selector: Optional[str] = None  # live diagnostics only, never persisted
    errors: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.mode is not Mode.FAIL


@dataclass(frozen=True)
class Resolution:
    locator: Locator
    outcome: ResolutionOutcome


class SelfHealer(Protocol):
    """Pluggable heuristic tried after every literal candidate has failed."""

    def attempt(self, candidates: Sequence[str], page: Page, *, timeout_ms: int) -> Optional[Locator]:
        ...


def safe_attach(attach: Optional[Attach], message: str) -> None:
    """Send a message to the reporting sink; sink failures never reach the caller."""
    if attach is None:
        return
    try:
        attach(message)
    except Exception as e:
        get_logger(__name__).debug(f"attach failed: {e!r}")


class CandidateResolver:
    """
    Sequential multi-strategy matcher:
      - literal candidates in array order (attached + visible gates, per-candidate timeout)
      - heuristic healer, if the entry enables it and one is configured
      - caller-supplied fallback factory
      - FAIL: raise NoMatchError for required specs, else return a best-effort locator
    """

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
        if page is None:
            raise ValueError("CandidateResolver requires a Playwright Page")
        self.page = page
        self.registry = registry
        self.audit = audit
        self.healer = healer
        self.attach = attach
        self.settings = settings or get_settings()
        self.log = get_logger(__name__)

    # ---------- helpers ----------

    def _root(self, scope: Optional[ScopeProducer]):
        return scope() if scope is not None else self.page

    def locator_for(self, candidate: str, scope: Optional[ScopeProducer] = None) -> Locator:
        return build_locator(self._root(scope), parse_selector(candidate))

    def _finish(self, outcome: ResolutionOutcome, locator: Locator) -> Resolution:
        self.audit.record(outcome.key, outcome)
        if outcome.mode is Mode.FAIL:
            message = f"{outcome.key}: FAIL after {outcome.total} candidate(s)"
        else:
            where = f" ({outcome.used_index}/{outcome.total})" if outcome.used_index else ""
            message = f"{outcome.key}: {outcome.mode.value}{where}"
        log_resolution(self.log, outcome.key, outcome.mode, message)
        return Resolution(locator=locator, outcome=outcome)

    def _url(self) -> str:
        try:
            return self.page.url
        except Exception:
            return "<unknown>"

    # ---------- public API ----------

    def by_key(
        self,
        key: str,
        *,
        scope: Optional[ScopeProducer] = None,
        fallback: Optional[FallbackFactory] = None,
    ) -> Resolution:
        return self.resolve(self.registry.spec_for(key), scope=scope, fallback=fallback)

    def resolve(
        self,
        spec: ElementSpec,
        *,
        scope: Optional[ScopeProducer] = None,
        fallback: Optional[FallbackFactory] = None,
    ) -> Resolution:
        key = spec.key
        candidates = list(spec.candidates)
        total = len(candidates)
        timeout_ms = spec.effective_timeout(self.settings)

        if total == 0:
            return self._no_candidates(spec)

        errors: List[str] = []

        for idx, candidate in enumerate(candidates):
            try:
                loc = wait_attached_visible(self.locator_for(candidate, scope), timeout_ms)
            except Exception as e:
                errors.append(f"[#{idx + 1}] {e}")
                continue
            mode = Mode.PRIMARY if idx == 0 else Mode.HEALED
            safe_attach(self.attach, f"Locator resolved [{mode.value}] for {key} ({idx + 1}/{total})")
            return self._finish(
                ResolutionOutcome(key, mode, total, used_index=idx + 1, used_selector=candidate,
                                  errors=tuple(errors)),
                loc,
            )

        if spec.healer and spec.healer.enabled and self.healer is not None:
            try:
                healed = self.healer.attempt(candidates, self.page, timeout_ms=spec.healer_timeout(self.settings))
            except Exception as e:
                healed = None
                errors.append(f"healer: {e}")
            if healed is not None:
                safe_attach(self.attach, f"Locator resolved [HEALER] for {key}")
                return self._finish(ResolutionOutcome(key, Mode.HEALER, total, errors=tuple(errors)), healed)

        if fallback is not None:
            try:
                fb = fallback()
            except Exception as e:
                fb = None
                errors.append(f"fallback: {e}")
            if fb is not None:
                safe_attach(self.attach, f"Locator resolved [FALLBACK] for {key}")
                return self._finish(
                    ResolutionOutcome(key, Mode.FALLBACK, total, used_selector="fallbackFactory",
                                      errors=tuple(errors)),
                    fb,
                )

        url = self._url()
        safe_attach(
            self.attach,
            f"Locator resolution FAILED for key: {key}\n"
            f"URL: {url}\n"
            f"Tried {total} candidates:\n- " + "\n- ".join(errors),
        )
        resolution = self._finish(ResolutionOutcome(key, Mode.FAIL, total, errors=tuple(errors)),
                                  self._best_effort(candidates[0], scope))
        if spec.required:
            raise NoMatchError(key, url, errors, total)
        return resolution

    def _best_effort(self, candidate: str, scope: Optional[ScopeProducer]) -> Locator:
        try:
            return self.locator_for(candidate, scope)
        except Exception:
            return self.page.locator(":root")

    def _no_candidates(self, spec: ElementSpec) -> Resolution:
        try:
            keys = self.registry.all_keys()
            hint = ", ".join(self.registry.suggest(spec.key))
            safe_attach(
                self.attach,
                f'No candidates in spec for "{spec.key}".\n'
                f"Registry has {len(keys)} keys. Nearby: {hint or '(none)'}",
            )
        except Exception as e:
            self.log.debug(f"nearby-key hint unavailable: {e!r}")
        resolution = self._finish(ResolutionOutcome(spec.key, Mode.FAIL, 0), self.page.locator(":root"))
        if spec.required:
            raise NoCandidateError(spec.key)
        return resolution


__all__ = [
    "Attach",
    "CandidateResolver",
    "FallbackFactory",
    "Mode",
    "Resolution",
    "ResolutionOutcome",
    "SelfHealer",
    "safe_attach",
]
