"""
Domain Entities - Core business objects with identity.

Entities are identified by their ID rather than their attributes.
They are immutable: the workflow only ever inserts new records,
so there is nothing to update in place.
"""

from dataclasses import dataclass, field

from .enums import OrderState


@dataclass(frozen=True)
class Patient:
    """
    Identity record for a patient.

    Patients are seeded out-of-band; the workflow reads them but
    never creates, changes or deletes them.
    """
    patient_id: str
    mrn: str
    first_name: str
    last_name: str
    dob: str  # ISO date, e.g. "1975-02-15"
    gender: str
    allergies: str = ""
    encounter_id: str | None = None

    @property
    def display_name(self) -> str:
        """Name as shown on dashboards ("First Last")."""
        return f"{self.first_name} {self.last_name}"

    def dob_digits(self) -> str:
        """Date of birth with separators stripped, as HL7 expects."""
        return self.dob.replace("-", "")


@dataclass(frozen=True)
class Order:
    """
    A request for an imaging procedure.

    Created exactly once by the orchestrator. Its progress is tracked
    through audit events, never through a status column.
    """
    order_id: str
    patient_id: str
    procedure_code: str
    priority: str
    created_at: str  # ISO timestamp


@dataclass(frozen=True)
class Image:
    """
    Evidence that an order was fulfilled.

    An order with at least one image is no longer pending.
    """
    image_id: str
    order_id: str
    patient_id: str
    file_path: str
    study_date: str  # ISO timestamp
    modality: str

    def study_day(self) -> str:
        """Date part of the study timestamp."""
        return self.study_date[:10]

    def study_time(self) -> str:
        """Time part of the study timestamp (HH:MM:SS)."""
        return self.study_date[11:19]


@dataclass(frozen=True)
class AuditEvent:
    """
    An immutable fact in the audit trail.

    event_id is the only ordering that matters; timestamps come from a
    wall clock and may repeat or even go backwards.
    """
    event_id: int
    timestamp: str
    event_type: str
    ref_id: str

    def time_of_day(self) -> str:
        """HH:MM:SS part of the timestamp."""
        return self.timestamp[11:19]


@dataclass(frozen=True)
class PendingOrder:
    """An order with no captured image, joined with its patient's name."""
    order_id: str
    patient_id: str
    patient_name: str
    procedure_code: str
    priority: str
    created_at: str

    def ordered_at(self) -> str:
        """Creation time to minute precision, for list display."""
        return self.created_at[:16]


@dataclass(frozen=True)
class OrderStatus:
    """
    Derived view of where an order stands.

    Built from the audit trail and image table each time it is asked
    for, so it can never drift from them.
    """
    order_id: str
    state: OrderState
    image_captured: bool = False
    events: list[AuditEvent] = field(default_factory=list)

    def is_delivered(self) -> bool:
        """Check if the external system has confirmed the order."""
        return self.state == OrderState.DELIVERED

    def is_pending(self) -> bool:
        """Pending means no image yet, regardless of delivery."""
        return not self.image_captured
