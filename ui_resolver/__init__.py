"""
ui_resolver
-----------
Resilient UI-element resolution for Playwright test suites: registry keys map
to ordered selector candidates, resolved with healing, fallback and an audit trail.
"""

__version__ = "0.1.0"
