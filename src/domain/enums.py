"""
Domain Enums - Type-safe constants for the imaging order workflow.

These enums replace magic strings throughout the codebase. The audit log
itself stores event types as plain strings, so AuditEventType is a
convenience for the orchestrator rather than a closed set.
"""

from enum import Enum


class AuditEventType(Enum):
    """
    Kinds of audit events written by the orchestrator.

    The first six track the order lifecycle. The last three are
    observability kinds for failures that happen off the command path
    or that leave an order needing attention.
    """
    ORDER_CREATED = "ORDER_CREATED"
    HL7_CREATED = "HL7_CREATED"
    WAITING_FOR_JSON = "WAITING_FOR_JSON"
    JSON_CREATED = "JSON_CREATED"
    ORDER_DELIVERED = "ORDER_DELIVERED"
    IMAGE_CAPTURED = "IMAGE_CAPTURED"

    HL7_SEND_FAILED = "HL7_SEND_FAILED"
    RESPONSE_UNRECOGNIZED = "RESPONSE_UNRECOGNIZED"
    WATCHER_FAILED = "WATCHER_FAILED"

    def is_failure(self) -> bool:
        """Check if this event records something that went wrong."""
        return self in {
            AuditEventType.HL7_SEND_FAILED,
            AuditEventType.RESPONSE_UNRECOGNIZED,
            AuditEventType.WATCHER_FAILED,
        }

    @classmethod
    def token(cls, event_type: "AuditEventType | str") -> str:
        """
        Normalize an event type to the string stored in the log.

        Unknown strings pass through untouched - the log is open-ended.
        """
        if isinstance(event_type, AuditEventType):
            return event_type.value
        return str(event_type)


class OrderState(Enum):
    """
    Position of an order on the HL7 delivery track.

    Derived from audit history on demand, never stored. Image capture
    is tracked separately because it is not gated by delivery.
    """
    CREATED = "created"
    HL7_WRITTEN = "hl7_written"
    WAITING_FOR_JSON = "waiting_for_json"
    DELIVERED = "delivered"
    SEND_FAILED = "send_failed"

    def is_terminal(self) -> bool:
        """Delivered orders never move back on the HL7 track."""
        return self == OrderState.DELIVERED

    def needs_resend(self) -> bool:
        """Check if the outbound message has to be written again."""
        return self == OrderState.SEND_FAILED

    @classmethod
    def from_event(cls, event_type: str) -> "OrderState | None":
        """
        Map an audit event token to the state it moves an order into.

        Returns None for events that don't touch the HL7 track.
        """
        return _EVENT_TO_STATE.get(event_type)


_EVENT_TO_STATE: dict[str, OrderState] = {
    AuditEventType.ORDER_CREATED.value: OrderState.CREATED,
    AuditEventType.HL7_CREATED.value: OrderState.HL7_WRITTEN,
    AuditEventType.WAITING_FOR_JSON.value: OrderState.WAITING_FOR_JSON,
    AuditEventType.ORDER_DELIVERED.value: OrderState.DELIVERED,
    AuditEventType.HL7_SEND_FAILED.value: OrderState.SEND_FAILED,
}


class Priority(Enum):
    """Order priority as carried in the ORC segment."""
    ROUTINE = "Routine"
    STAT = "STAT"

    @classmethod
    def from_string(cls, value: str) -> "Priority":
        """
        Parse a priority case-insensitively.

        Raises:
            ValueError: If the value is not a known priority
        """
        normalized = value.strip().lower()
        for priority in cls:
            if priority.value.lower() == normalized or priority.name.lower() == normalized:
                return priority
        raise ValueError(f"Unknown priority: {value!r}")


class Modality(Enum):
    """Imaging modalities the capture station can record."""
    CT = "CT"
    CR = "CR"
    MR = "MR"

    @classmethod
    def from_string(cls, value: str) -> "Modality":
        """
        Parse a modality code case-insensitively.

        Raises:
            ValueError: If the value is not a known modality
        """
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown modality: {value!r}") from None


class Procedure(Enum):
    """Procedures offered on the ordering screen."""
    CT_ABDOMEN = "CT Abdomen"
    CHEST_XRAY = "Chest X-Ray"
    BRAIN_MRI = "Brain MRI"

    def get_modality(self) -> Modality:
        """Modality a procedure is normally captured with."""
        return {
            Procedure.CT_ABDOMEN: Modality.CT,
            Procedure.CHEST_XRAY: Modality.CR,
            Procedure.BRAIN_MRI: Modality.MR,
        }[self]

    @classmethod
    def choices(cls) -> list[str]:
        """Display values, in menu order."""
        return [procedure.value for procedure in cls]
