# ui_resolver/core/registry.py
from __future__ import annotations

"""Locator registry
-------------------
Pydantic models for element specs and the Registry that loads them from a
JSON/YAML document (or a directory of documents merged last-file-wins),
caches them per absolute source path, and answers key lookups.
"""

import json
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from ui_resolver.core.errors import RegistrySourceError, SpecNotFoundError
from ui_resolver.utils.config import Settings, get_settings
from ui_resolver.utils.logger import get_logger

DEFAULT_REGISTRY_PATH = Path(__file__).resolve().parent.parent / "locators" / "registry.json"
SOURCE_SUFFIXES = (".json", ".yaml", ".yml")
EXCERPT_RADIUS = 60


# ---------- Models ----------


class HealerConfig(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    enabled: bool = False
    timeout_ms: Optional[int] = Field(default=None, alias="timeout", gt=0)


class ElementSpec(BaseModel):
    """One registry entry: how to find a single symbolic UI key."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    key: str
    candidates: List[str] = Field(default_factory=list, description="Selectors in authorial priority order")
    required: bool = True
    timeout_ms: Optional[int] = Field(default=None, alias="timeout", gt=0)
    healer: Optional[HealerConfig] = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_legacy(cls, data: Any) -> Any:
        # Older entries carried a single `selector` string instead of `candidates`
        if isinstance(data, dict) and "candidates" not in data and data.get("selector"):
            data = dict(data)
            data["candidates"] = [data.pop("selector")]
        return data

    @field_validator("candidates", mode="before")
    @classmethod
    def _drop_blank(cls, v: Any) -> Any:
        if v is None:
            return []
        if isinstance(v, list):
            return [c.strip() for c in v if isinstance(c, str) and c.strip()]
        return v

    def effective_timeout(self, settings: Settings) -> int:
        return self.timeout_ms if self.timeout_ms is not None else settings.DEFAULT_TIMEOUT_MS

    def healer_timeout(self, settings: Settings) -> int:
        if self.healer and self.healer.timeout_ms is not None:
            return self.healer.timeout_ms
        return settings.HEALER_TIMEOUT_MS


# ---------- Parsing helpers ----------


def _excerpt(raw: str, pos: int) -> str:
    return raw[max(0, pos - EXCERPT_RADIUS): pos + EXCERPT_RADIUS]


def _parse_document(path: Path) -> Dict[str, Any]:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise RegistrySourceError(f"Cannot read locator registry at {path}: {e}", path) from e

    try:
        if path.suffix.lower() == ".json":
            data = json.loads(raw) if raw.strip() else {}
        else:
            data = yaml.safe_load(raw) or {}
    except json.JSONDecodeError as je:
        raise RegistrySourceError(
            f"Failed to parse locator registry JSON at {path}\n{je}\n"
            f"--- around ---\n{_excerpt(raw, je.pos)}\n--------------",
            path,
        ) from je
    except yaml.YAMLError as ye:
        mark = getattr(ye, "problem_mark", None)
        pos = mark.index if mark is not None else 0
        raise RegistrySourceError(
            f"Failed to parse locator registry YAML at {path}\n{ye}\n"
            f"--- around ---\n{_excerpt(raw, pos)}\n--------------",
            path,
        ) from ye

    if not isinstance(data, dict):
        raise RegistrySourceError(f"Locator registry {path} must define a mapping/object at the top level.", path)
    return data


def _build_specs(data: Dict[str, Any], path: Path) -> Dict[str, ElementSpec]:
    specs: Dict[str, ElementSpec] = {}
    problems: List[str] = []
    for key, entry in data.items():
        if not isinstance(entry, dict):
            problems.append(f"  - {key}: entry must be a mapping/object")
            continue
        try:
            specs[str(key)] = ElementSpec.model_validate({**entry, "key": str(key)})
        except ValidationError as ve:
            for e in ve.errors():
                loc = ".".join(str(p) for p in e.get("loc", []))
                problems.append(f"  - {key}.{loc}: {e.get('msg', 'invalid value')}")
    if problems:
        raise RegistrySourceError("\n".join([f"Invalid locator registry '{path}':", *problems]), path)
    return specs


# ---------- Registry ----------


class Registry:
    """
    Symbolic key → ElementSpec, loaded once per source location.

    Source location precedence:
      1) explicit argument to load()/spec_for()
      2) set_source_location() or the constructor argument
      3) Settings.LOCATORS_PATH (env / .env)
      4) the last successfully loaded location
      5) DEFAULT_REGISTRY_PATH next to the package
    """

    def __init__(self, source: Optional[Path | str] = None, *, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()
        self.log = get_logger(__name__)
        self._source: Optional[Path] = Path(source) if source else None
        self._last: Optional[Path] = None
        self._cache: Dict[Path, Dict[str, ElementSpec]] = {}
        self._lock = threading.Lock()

    # ---------- location ----------

    def resolve_source(self, source: Optional[Path | str] = None) -> Path:
        chosen = source or self._source or self.settings.LOCATORS_PATH or self._last or DEFAULT_REGISTRY_PATH
        return Path(chosen).expanduser().resolve()

    @property
    def source_location(self) -> Path:
        return self.resolve_source()

    def set_source_location(self, path: Path | str) -> Path:
        """Point the registry at a new file/directory and drop every cached load."""
        self._source = Path(path)
        self.clear_cache()
        return self.resolve_source()

    def clear_cache(self) -> None:
        with self._lock:
            self._cache.clear()
            self._last = None

    def reload(self) -> Dict[str, ElementSpec]:
        target = self.resolve_source()
        with self._lock:
            self._cache.pop(target, None)
        return self.load(target)

    # ---------- loading ----------

    def load(self, source: Optional[Path | str] = None) -> Dict[str, ElementSpec]:
        target = self.resolve_source(source)
        cached = self._cache.get(target)
        if cached is not None:
            return cached

        with self._lock:
            cached = self._cache.get(target)
            if cached is not None:
                return cached
            if not target.exists():
                raise RegistrySourceError(
                    f"Locator registry not found at: {target}\n"
                    "Pass a path to Registry(...)/load(), call set_source_location(...), "
                    "set LOCATORS_PATH in the environment or .env, or load a registry successfully first.",
                    target,
                )
            specs = self._load_directory(target) if target.is_dir() else _build_specs(_parse_document(target), target)
            self._cache[target] = specs
            self._last = target

        self.log.debug(f"Loaded {len(specs)} locator spec(s) from {target}")
        return specs

    def _load_directory(self, root: Path) -> Dict[str, ElementSpec]:
        merged: Dict[str, ElementSpec] = {}
        files = sorted(p for p in root.iterdir() if p.is_file() and p.suffix.lower() in SOURCE_SUFFIXES)
        for fp in files:
            specs = _build_specs(_parse_document(fp), fp)
            overridden = merged.keys() & specs.keys()
            if overridden:
                self.log.debug(f"{fp.name} overrides {len(overridden)} key(s)")
            merged.update(specs)
        return merged

    # ---------- lookup ----------

    def spec_for(self, key: str, *, source: Optional[Path | str] = None) -> ElementSpec:
        specs = self.load(source)
        spec = specs.get(key)
        if spec is None:
            raise SpecNotFoundError(key, self.resolve_source(source), self.suggest(key, source=source))
        return spec

    def all_keys(self, *, source: Optional[Path | str] = None) -> List[str]:
        return list(self.load(source).keys())

    def suggest(self, key: str, *, limit: int = 10, source: Optional[Path | str] = None) -> List[str]:
        """Keys sharing the last dotted segment of `key` ("did you mean" hints)."""
        leaf = key.rsplit(".", 1)[-1].lower()
        if not leaf:
            return []
        return [k for k in self.all_keys(source=source) if leaf in k.lower()][:limit]


__all__ = [
    "DEFAULT_REGISTRY_PATH",
    "ElementSpec",
    "HealerConfig",
    "Registry",
]
