"""
Audit Log - Append-only, totally ordered journal of workflow events.

The log assigns event ids itself. Ids start after the highest id
already in the store and increase by exactly one per event, so within a
process the sequence has no gaps. A lock around id assignment and the
repository write makes append() safe to call from the command path and
the watcher path at the same time.
"""

import sys
import threading
from pathlib import Path
from typing import Callable

# Add src to path for imports
_src_path = Path(__file__).parent.parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from business_logic.services.clock import Clock, SystemClock, iso_timestamp
from data_access.repositories.imaging_repository import ImagingRepository
from domain.entities import AuditEvent
from domain.enums import AuditEventType

DEFAULT_TAIL_LIMIT = 100


class AuditLog:
    """
    Writes and reads audit events.

    Event types are opaque to the log: any AuditEventType member or
    plain string is accepted and stored as text.
    """

    def __init__(self, repository: ImagingRepository, clock: Clock | None = None):
        """
        Initialize the log.

        Args:
            repository: Store that persists the events
            clock: Time source for event timestamps
        """
        self._repository = repository
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._last_event_id = repository.max_audit_event_id()

    @property
    def last_event_id(self) -> int:
        """Id of the most recently appended event (0 for an empty log)."""
        return self._last_event_id

    def append(self, event_type: AuditEventType | str, ref_id: str) -> int:
        """
        Append one event.

        Args:
            event_type: Kind of event
            ref_id: Subject of the event (order id, file name, message text...)

        Returns:
            The assigned event id

        Raises:
            AuditAppendError: If the store rejects the write
        """
        return self.append_many([(event_type, ref_id)])[0]

    def append_many(
        self,
        entries: list[tuple[AuditEventType | str, str]]
    ) -> list[int]:
        """
        Append several events as one unit.

        The events get consecutive ids and are committed in a single
        transaction, so readers see all of them or none.

        Returns:
            The assigned event ids, in order

        Raises:
            AuditAppendError: If the store rejects the write (no ids are consumed)
        """
        return [event.event_id for event in self.record(entries)]

    def record(
        self,
        entries: list[tuple[AuditEventType | str, str]],
        write: Callable[[list[AuditEvent]], None] | None = None
    ) -> list[AuditEvent]:
        """
        Like append_many(), but returns the full events that were written.

        Args:
            entries: (event_type, ref_id) pairs
            write: Persists the numbered events; defaults to the
                repository's append_audit_batch. Lets a caller commit the
                events in the same transaction as its own rows.
        """
        if not entries:
            return []

        with self._lock:
            first_id = self._last_event_id + 1
            events = [
                AuditEvent(
                    event_id=first_id + offset,
                    timestamp=iso_timestamp(self._clock.now()),
                    event_type=AuditEventType.token(event_type),
                    ref_id=ref_id,
                )
                for offset, (event_type, ref_id) in enumerate(entries)
            ]
            (write or self._repository.append_audit_batch)(events)
            self._last_event_id = events[-1].event_id
            return events

    def tail(self, limit: int = DEFAULT_TAIL_LIMIT) -> list[AuditEvent]:
        """
        Get the most recent events.

        Args:
            limit: Maximum number of events

        Returns:
            Events oldest first; reverse the list for newest first
        """
        if limit <= 0:
            return []
        return self._repository.query_audit_tail(limit)

    def events_for(self, ref_id: str) -> list[AuditEvent]:
        """All events recorded against ref_id, oldest first."""
        return self._repository.query_audit_by_ref(ref_id)

    def events_of_type(self, event_type: AuditEventType | str) -> list[AuditEvent]:
        """All events of one kind, oldest first."""
        return self._repository.query_audit_by_type(AuditEventType.token(event_type))

    def events_since(self, event_id: int, limit: int = DEFAULT_TAIL_LIMIT) -> list[AuditEvent]:
        """
        Events with an id greater than event_id, oldest first.

        Used by the watch loop to print only what is new.
        """
        newer = self._last_event_id - event_id
        if newer <= 0:
            return []
        return [e for e in self.tail(min(newer, limit)) if e.event_id > event_id]
