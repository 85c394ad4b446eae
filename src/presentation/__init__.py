"""
Presentation Layer - CLI and output formatting.

This layer handles all user interaction and output formatting. It is a
pure consumer of the orchestrator's queries and notifications.
"""

from .cli.input_collectors import InputCollector, input_collector
from .formatters.output_formatters import (
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
    # Input collection
    "InputCollector",
    "input_collector",
    # Output formatting
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
