"""
Output Formatters - Presentation layer for displaying workflow state.

This module provides classes for formatting output to the console,
keeping display logic separate from business logic.
"""

from .output_formatters import (
    AuditTimelineFormatter,
    ConsoleFormatter,
    ImageFormatter,
    OrderStatusFormatter,
    PatientFormatter,
    PendingOrderFormatter,
    audit_formatter,
    console_formatter,
    image_formatter,
    patient_formatter,
    pending_order_formatter,
    status_formatter,
)

__all__ = [
    "ConsoleFormatter",
    "PatientFormatter",
    "PendingOrderFormatter",
    "AuditTimelineFormatter",
    "ImageFormatter",
    "OrderStatusFormatter",
    "console_formatter",
    "patient_formatter",
    "pending_order_formatter",
    "audit_formatter",
    "image_formatter",
    "status_formatter",
]
