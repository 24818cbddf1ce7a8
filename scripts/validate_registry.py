# scripts/validate_registry.py
"""
Validate the configured locator registry (LOCATORS_PATH or the bundled one).
Run: python scripts/validate_registry.py [path]
"""

import sys

from ui_resolver.core.errors import LocatorError
from ui_resolver.core.registry import Registry
from ui_resolver.utils.logger import get_logger

def main():
    log = get_logger(__name__)
    registry = Registry(sys.argv[1] if len(sys.argv) > 1 else None)

    try:
        keys = registry.all_keys()
    except LocatorError as e:
        log.error(str(e))
        sys.exit(1)

    empty = [k for k, spec in registry.load().items() if not spec.candidates]
    for k in empty:
        log.warning(f"{k}: no candidates")
    log.info(f"Validated {len(keys)} locator key(s) from {registry.source_location}.")

if __name__ == "__main__":
    main()
