"""
Audit package for the locator engine.
Event trail with masking and counters, plus table/markdown renderers.
"""

from .trail import AuditEvent, AuditSnapshot, AuditTrail, Counts, mask
from .render import build_plain_summary, build_step_table, load_summary

__all__ = [
    "AuditEvent",
    "AuditSnapshot",
    "AuditTrail",
    "Counts",
    "mask",
    "build_plain_summary",
    "build_step_table",
    "load_summary",
]
