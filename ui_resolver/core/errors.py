# ui_resolver/core/errors.py
from __future__ import annotations

from pathlib import Path
from typing import List, Optional, Sequence


class LocatorError(RuntimeError):
    """Base class for every failure raised by the locator engine."""


class RegistrySourceError(LocatorError):
    """Registry source is missing, unreadable or malformed (configuration gap)."""

    def __init__(self, message: str, path: Optional[Path] = None) -> None:
        super().__init__(message)
        self.path = path


class SpecNotFoundError(LocatorError):
    """Key is absent from the registry (authoring gap)."""

    def __init__(self, key: str, source: Optional[Path] = None, suggestions: Sequence[str] = ()) -> None:
        self.key = key
        self.source = source
        self.suggestions = list(suggestions)
        msg = f'Locator key not found: "{key}" in {source}'
        if self.suggestions:
            msg += f"\nDid you mean: {', '.join(self.suggestions)}"
        super().__init__(msg)


class NoCandidateError(LocatorError):
    """Spec exists but lists zero candidates (authoring gap, not a runtime miss)."""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f'Spec for "{key}" has no candidates')


class NoMatchError(LocatorError):
    """Every strategy was exhausted for a required spec (runtime / UI drift)."""

    def __init__(self, key: str, url: str, errors: Sequence[str], total: int) -> None:
        self.key = key
        self.url = url
        self.errors: List[str] = list(errors)
        self.total = total
        super().__init__(
            f'No locator candidate matched for key "{key}"\n'
            f"URL: {url}\n"
            f"Tried {total} candidate(s):\n- " + "\n- ".join(self.errors or ["<none>"])
        )


class CompoundActionError(LocatorError):
    """A bounded retry loop (panel open, modal save, ...) ran out of attempts."""

    def __init__(self, message: str, diagnostics: Sequence[str] = ()) -> None:
        self.diagnostics = list(diagnostics)
        full = message
        if self.diagnostics:
            full += "\n" + "\n".join(self.diagnostics)
        super().__init__(full)
