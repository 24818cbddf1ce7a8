"""
Core package for the locator engine.
Registry loading, candidate resolution, the optional healer and the action facade.

Consumers should import submodules directly, e.g.:
  from ui_resolver.core.registry import Registry
  from ui_resolver.core.resolver import CandidateResolver
  from ui_resolver.core.actions import ActionFacade
"""

__all__: list[str] = []
