"""
Output Formatters - Presentation layer for displaying workflow state.

This module handles all output formatting, keeping display logic
separate from business logic. Formatters only read what the
orchestrator's queries return; they never change state.
"""

from pathlib import Path
import sys
from typing import Any

# Add src to path for imports
_src_path = Path(__file__).parent.parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.entities import AuditEvent, Image, OrderStatus, Patient, PendingOrder
from domain.enums import AuditEventType


class ConsoleFormatter:
    """
    Formats output for console display.

    This class handles all console output formatting, making it easy
    to change output style or add new formats.
    """

    def __init__(self, width: int = 70):
        """
        Initialize formatter.

        Args:
            width: Width of output lines
        """
        self._width = width

    def header(self, text: str, char: str = "=") -> str:
        """
        Format a header line.

        Args:
            text: Header text
            char: Character to use for border

        Returns:
            Formatted header string
        """
        lines = [
            char * self._width,
            text,
            char * self._width
        ]
        return "\n".join(lines)

    def subheader(self, text: str) -> str:
        """Format a subheader line."""
        return f"\n{text}\n{'-' * self._width}"

    def key_value(self, key: str, value: Any, indent: int = 0) -> str:
        """
        Format a key-value pair.

        Args:
            key: Key name
            value: Value to display
            indent: Number of spaces to indent

        Returns:
            Formatted key-value string
        """
        spaces = " " * indent
        return f"{spaces}{key}: {value}"

    def success(self, message: str) -> str:
        """Format a success message."""
        return f"✓ {message}"

    def error(self, message: str) -> str:
        """Format an error message."""
        return f"✗ {message}"

    def warning(self, message: str) -> str:
        """Format a warning message."""
        return f"⚠  {message}"

    def info(self, message: str) -> str:
        """Format an info message."""
        return f"ℹ  {message}"


class PatientFormatter(ConsoleFormatter):
    """Formatter for the patient picker."""

    def format_patient_list(self, patients: list[Patient]) -> str:
        """
        Format patients as a numbered list.

        Args:
            patients: Patients to format

        Returns:
            Formatted string
        """
        if not patients:
            return self.warning("No patients found")

        lines = [self.header("PATIENTS")]
        for i, patient in enumerate(patients, 1):
            lines.append(f"\n[{i}] {patient.display_name} ({patient.patient_id})")
            lines.append(f"    MRN: {patient.mrn}   DOB: {patient.dob}   Gender: {patient.gender}")
            if patient.allergies:
                lines.append(f"    Allergies: {patient.allergies}")
        lines.append("=" * self._width)
        return "\n".join(lines)


class PendingOrderFormatter(ConsoleFormatter):
    """Formatter for the imaging dashboard (orders awaiting capture)."""

    def format_pending_orders(self, orders: list[PendingOrder]) -> str:
        """
        Format pending orders, in the order given (newest first).

        Args:
            orders: Pending orders to format

        Returns:
            Formatted string
        """
        if not orders:
            return self.info("No pending orders")

        lines = [self.header("IMAGING DASHBOARD")]
        for i, order in enumerate(orders, 1):
            lines.append(f"\n[{i}] {order.procedure_code} ({order.order_id})")
            lines.append(f"    Patient: {order.patient_name}")
            lines.append(f"    Priority: {order.priority}")
            lines.append(f"    Ordered: {order.ordered_at()}")
        lines.append(f"\nTotal: {len(orders)} pending order(s)")
        lines.append("=" * self._width)
        return "\n".join(lines)


class AuditTimelineFormatter(ConsoleFormatter):
    """Formatter for the audit & timeline panel."""

    def format_event(self, event: AuditEvent) -> str:
        """
        Format one audit event.

        HL7_CREATED events carry the whole message, so they are shown as
        a titled block; everything else is a single line.
        """
        if event.event_type == AuditEventType.HL7_CREATED.value:
            lines = [self.subheader("HL7 Message Created")]
            lines.extend(f"  {segment}" for segment in event.ref_id.splitlines())
            return "\n".join(lines)

        line = f"{event.time_of_day()}  {event.event_type} → {event.ref_id}"
        try:
            if AuditEventType(event.event_type).is_failure():
                return self.warning(line)
        except ValueError:
            pass  # Event types are open-ended; unknown ones print plainly
        return line

    def format_timeline(self, events: list[AuditEvent]) -> str:
        """
        Format audit events, oldest first.

        Args:
            events: Events in ascending id order

        Returns:
            Formatted string
        """
        if not events:
            return self.info("No audit events yet")

        lines = [self.header("AUDIT & TIMELINE")]
        lines.extend(self.format_event(event) for event in events)
        lines.append("=" * self._width)
        return "\n".join(lines)


class ImageFormatter(ConsoleFormatter):
    """Formatter for a patient's captured images."""

    def format_image_list(self, images: list[Image]) -> str:
        """
        Format images with their study date and time.

        Args:
            images: Images in study date order

        Returns:
            Formatted string
        """
        if not images:
            return self.info("No images captured yet")

        lines = [self.subheader("Captured Images")]
        for image in images:
            lines.append(f"  {image.modality:<4} {image.study_day()} {image.study_time()}  {image.image_id}")
        return "\n".join(lines)


class OrderStatusFormatter(ConsoleFormatter):
    """Formatter for a single order's derived status."""

    def format_status(self, status: OrderStatus) -> str:
        """
        Format an order status with its event history.

        Args:
            status: Derived order status

        Returns:
            Formatted string
        """
        lines = [
            self.subheader(f"Order: {status.order_id}"),
            self.key_value("HL7 state", status.state.name, 2),
            self.key_value("Image captured", "yes" if status.image_captured else "no", 2),
        ]
        if status.state.needs_resend():
            lines.append(self.warning("Outbound message was not written - resend required"))
        if status.events:
            lines.append("\n  History:")
            for event in status.events:
                ref = "(message)" if event.event_type == AuditEventType.HL7_CREATED.value else event.ref_id
                lines.append(f"    #{event.event_id} {event.time_of_day()} {event.event_type} {ref}")
        return "\n".join(lines)


# Convenience instances for easy import
console_formatter = ConsoleFormatter()
patient_formatter = PatientFormatter()
pending_order_formatter = PendingOrderFormatter()
audit_formatter = AuditTimelineFormatter()
image_formatter = ImageFormatter()
status_formatter = OrderStatusFormatter()
