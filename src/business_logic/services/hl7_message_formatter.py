"""
HL7 Message Formatter - Builds the outbound ORM^O01 message for an order.

The output is a fixed five-segment block (MSH, PID, PV1, ORC, OBR).
Field values are inserted as-is: no escaping of |, ^, ~, \\ or &.
Upstream data is expected not to contain those characters.
"""

import sys
from datetime import datetime
from pathlib import Path

# Add src to path for imports
_src_path = Path(__file__).parent.parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from business_logic.services.clock import hl7_timestamp
from domain.entities import Patient
from domain.value_objects import OutboundMessage

SEGMENT_TERMINATOR = "\n"


class HL7MessageFormatter:
    """
    Formats orders as HL7 v2.3 ORM messages.

    The formatter is pure: the current time is passed in, so the
    same inputs always give the same text.
    """

    def __init__(
        self,
        sending_application: str = "APP",
        sending_facility: str = "FAC",
        receiving_application: str = "BRIDGELINK",
        receiving_facility: str = "BRIDGELINK",
        extension: str = ".hl7"
    ):
        """
        Initialize formatter.

        Args:
            sending_application: MSH-3
            sending_facility: MSH-4, also the assigning authority in PID/ORC/OBR
            receiving_application: MSH-5
            receiving_facility: MSH-6
            extension: File extension for the outbound message
        """
        self._sending_application = sending_application
        self._sending_facility = sending_facility
        self._receiving_application = receiving_application
        self._receiving_facility = receiving_facility
        self._extension = extension

    def format(
        self,
        patient: Patient,
        order_id: str,
        procedure: str,
        priority: str,
        now: datetime
    ) -> str:
        """
        Build the message text.

        Args:
            patient: Patient the order is for
            order_id: Placer order number
            procedure: Procedure description for OBR-4
            priority: Priority for ORC-5
            now: Message time, used for MSH-7 and OBR-7

        Returns:
            Newline-terminated segments
        """
        ts = hl7_timestamp(now)
        fac = self._sending_facility
        segments = [
            f"MSH|^~\\&|{self._sending_application}|{fac}|"
            f"{self._receiving_application}|{self._receiving_facility}|{ts}||ORM^O01|{order_id}|P|2.3",
            f"PID|1||{patient.patient_id}^^^{fac}^MR||{patient.last_name}^{patient.first_name}"
            f"||{patient.dob_digits()}|{patient.gender}",
            "PV1|1|O",
            f"ORC|NW|{order_id}^{fac}|||{priority}",
            f"OBR|1|{order_id}^{fac}||{procedure}|||{ts}",
        ]
        return "".join(segment + SEGMENT_TERMINATOR for segment in segments)

    def build_message(
        self,
        patient: Patient,
        order_id: str,
        procedure: str,
        priority: str,
        now: datetime
    ) -> OutboundMessage:
        """Same as format(), wrapped with its file name."""
        return OutboundMessage(
            order_id=order_id,
            text=self.format(patient, order_id, procedure, priority, now),
            extension=self._extension,
        )


def extract_order_id(message_text: str) -> str | None:
    """
    Pull the placer order number back out of a message's ORC segment.

    Used to attribute HL7_CREATED audit entries (keyed by message text)
    to their order.

    Returns:
        Order id, or None if the text has no usable ORC segment
    """
    for line in message_text.splitlines():
        fields = line.split("|")
        if fields[0] == "ORC" and len(fields) > 2:
            return fields[2].split("^")[0] or None
    return None


# Convenience instance for easy import
hl7_formatter = HL7MessageFormatter()
