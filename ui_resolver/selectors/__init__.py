# ui_resolver/selectors/__init__.py
"""
Selectors package
-----------------
Parses registry candidate strings into a tagged selector variant and turns
them into Playwright locators guarded by attached/visible wait gates.
"""

from .locator import (
    QuerySelector,
    RoleSelector,
    Selector,
    build_locator,
    parse_selector,
    wait_attached_visible,
    wait_for_state,
)

__all__ = [
    "QuerySelector",
    "RoleSelector",
    "Selector",
    "build_locator",
    "parse_selector",
    "wait_attached_visible",
    "wait_for_state",
]
