"""
Imaging Order Orchestrator - Main coordinator for the order lifecycle.

This is the top-level component that ties together all layers:
- Domain models
- Imaging repository
- HL7 message formatter and audit log
- Response watchers

Every state-changing operation, whether issued by a user or by a
watcher, runs on one serialized command path. Queries read the
repository directly.
"""

import os
import sys
from datetime import datetime
from functools import partial
from pathlib import Path
from typing import Callable

# Add src to path
_src_path = Path(__file__).parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from business_logic.services.audit_log import AuditLog
from business_logic.services.clock import Clock, SystemClock, iso_timestamp
from business_logic.services.hl7_message_formatter import HL7MessageFormatter, extract_order_id
from business_logic.services.identifier_service import IdentifierGenerator
from data_access.repositories.imaging_repository import ImagingRepository
from domain.entities import AuditEvent, Image, Order, OrderStatus, Patient, PendingOrder
from domain.enums import AuditEventType, OrderState
from domain.exceptions import OutboundWriteError, ReferentialIntegrityError, WatcherSetupError
from domain.value_objects import OutboundMessage, ResponseFile, WatchTarget
from orchestration.command_queue import CommandQueue
from orchestration.config import ApplicationConfig
from orchestration.directory_watcher import DirectoryWatcher
from orchestration.response_scanner import ResponseScanner

AuditListener = Callable[[list[AuditEvent]], None]


class ImagingOrderOrchestrator:
    """
    Main application orchestrator.

    Owns the order/image state machine. Order state is never stored:
    it is folded from the audit trail each time it is asked for, and
    "pending" is a join against the image table.
    """

    def __init__(
        self,
        config: ApplicationConfig,
        repository: ImagingRepository,
        audit_log: AuditLog | None = None,
        formatter: HL7MessageFormatter | None = None,
        clock: Clock | None = None,
        id_generator: IdentifierGenerator | None = None,
        command_queue: CommandQueue | None = None
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Application configuration
            repository: Open repository handle (closed by shutdown())
            audit_log: Audit log (creates default if None)
            formatter: HL7 formatter (creates default if None)
            clock: Time source (system clock if None)
            id_generator: Identifier generator (creates default if None)
            command_queue: Serialized execution path (creates default if None)
        """
        self._config = config
        self._repository = repository
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or AuditLog(repository, self._clock)
        self._formatter = formatter or HL7MessageFormatter(extension=config.outbound_extension)
        self._id_generator = id_generator or IdentifierGenerator(self._clock)
        self._queue = command_queue or CommandQueue()

        self._listeners: list[AuditListener] = []
        self._watchers: list[DirectoryWatcher] = []
        self._response_suffixes = tuple(
            suffix
            for target in config.watch_targets()
            for suffix in target.suffixes
        )

    @property
    def audit_log(self) -> AuditLog:
        return self._audit_log

    @property
    def config(self) -> ApplicationConfig:
        return self._config

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def create_order(self, patient_id: str, procedure: str, priority: str) -> str:
        """
        Create an order and send its HL7 message to the interface engine.

        Audit trail: ORDER_CREATED, HL7_CREATED (message text),
        WAITING_FOR_JSON.

        Args:
            patient_id: Patient the order is for
            procedure: Procedure description
            priority: Priority, e.g. "Routine" or "STAT"

        Returns:
            The new order id

        Raises:
            ReferentialIntegrityError: If the patient does not exist
            OutboundWriteError: If the message file could not be written;
                the order exists and is left in SEND_FAILED
            AuditAppendError: If the audit trail could not be written
        """
        if not procedure or not procedure.strip():
            raise ValueError("Procedure is required")
        if not priority or not priority.strip():
            raise ValueError("Priority is required")
        return self._queue.run(self._create_order, patient_id, procedure, priority)

    def _create_order(self, patient_id: str, procedure: str, priority: str) -> str:
        patient = self._repository.find_patient(patient_id)
        if patient is None:
            raise ReferentialIntegrityError(f"Unknown patient: {patient_id}")

        now = self._clock.now()
        order = Order(
            order_id=self._id_generator.new_order_id(),
            patient_id=patient.patient_id,
            procedure_code=procedure,
            priority=priority,
            created_at=iso_timestamp(now),
        )
        events = self._audit_log.record(
            [(AuditEventType.ORDER_CREATED, order.order_id)],
            write=partial(self._repository.insert_order, order),
        )
        try:
            message = self._send(patient, order, now)
        except OutboundWriteError:
            events += self._audit_log.record([(AuditEventType.HL7_SEND_FAILED, order.order_id)])
            self._notify(events)
            raise

        events += self._audit_log.record([
            (AuditEventType.HL7_CREATED, message.text),
            (AuditEventType.WAITING_FOR_JSON, order.order_id),
        ])
        print(f"[ORDER] {order.order_id} created for {patient.display_name} "
              f"({procedure}, {priority})")
        self._notify(events)
        return order.order_id

    def resend_order_message(self, order_id: str) -> OutboundMessage:
        """
        Write the HL7 message for an existing order again.

        This is the retry path for orders left in SEND_FAILED. The message
        is rebuilt with the current time.

        Audit trail: HL7_CREATED (message text), WAITING_FOR_JSON.

        Raises:
            ReferentialIntegrityError: If the order does not exist
            OutboundWriteError: If the message file could not be written
        """
        return self._queue.run(self._resend_order_message, order_id)

    def _resend_order_message(self, order_id: str) -> OutboundMessage:
        order = self._repository.find_order(order_id)
        if order is None:
            raise ReferentialIntegrityError(f"Unknown order: {order_id}")
        patient = self._repository.find_patient(order.patient_id)
        if patient is None:
            raise ReferentialIntegrityError(f"Unknown patient: {order.patient_id}")

        try:
            message = self._send(patient, order, self._clock.now())
        except OutboundWriteError:
            self._notify(self._audit_log.record([(AuditEventType.HL7_SEND_FAILED, order_id)]))
            raise

        events = self._audit_log.record([
            (AuditEventType.HL7_CREATED, message.text),
            (AuditEventType.WAITING_FOR_JSON, order_id),
        ])
        print(f"[ORDER] {order_id} message resent")
        self._notify(events)
        return message

    def _send(self, patient: Patient, order: Order, now: datetime) -> OutboundMessage:
        """Format the order and drop it in the HL7 inbound directory."""
        message = self._formatter.build_message(
            patient, order.order_id, order.procedure_code, order.priority, now
        )
        target = self._config.hl7_in_dir / message.file_name
        partial_path = target.with_name(target.name + ".part")
        try:
            with open(partial_path, "w", encoding="utf-8", newline="") as f:
                f.write(message.text)
            os.replace(partial_path, target)
        except OSError as e:
            partial_path.unlink(missing_ok=True)
            print(f"[ERROR] Could not write {target}: {e}")
            raise OutboundWriteError(order.order_id, str(e)) from e
        return message

    def capture_image(self, order_id: str, modality: str) -> str:
        """
        Record an image captured for an order.

        The order leaves the pending list. Capture does not depend on
        HL7 delivery; it may happen before or after it.

        Audit trail: IMAGE_CAPTURED (image id).

        Returns:
            The new image id

        Raises:
            ReferentialIntegrityError: If the order does not exist
        """
        if not modality or not modality.strip():
            raise ValueError("Modality is required")
        return self._queue.run(self._capture_image, order_id, modality)

    def _capture_image(self, order_id: str, modality: str) -> str:
        order = self._repository.find_order(order_id)
        if order is None:
            raise ReferentialIntegrityError(f"Unknown order: {order_id}")

        image_id = self._id_generator.new_image_id()
        image = Image(
            image_id=image_id,
            order_id=order.order_id,
            patient_id=order.patient_id,
            file_path=(self._config.image_store_dir / f"{image_id}.dcm").as_posix(),
            study_date=iso_timestamp(self._clock.now()),
            modality=modality,
        )
        self._repository.insert_image(image)

        events = self._audit_log.record([(AuditEventType.IMAGE_CAPTURED, image_id)])
        print(f"[IMAGE] {image_id} captured for order {order_id} ({modality})")
        self._notify(events)
        return image_id

    def record_delivery(self, file_name: str) -> str | None:
        """
        Record that the external system dropped a response file.

        JSON_CREATED (file name) and ORDER_DELIVERED (order id) are
        committed together. A response-suffixed name whose stem does not
        look like an order id is recorded as RESPONSE_UNRECOGNIZED instead.

        Args:
            file_name: Base name of the response file, e.g. "O123.json"

        Returns:
            The order id delivery was recorded for, or None
        """
        return self._queue.run(self._record_delivery, file_name)

    def _record_delivery(self, file_name: str) -> str | None:
        response = ResponseFile.from_name(file_name, self._response_suffixes)
        if response is None:
            return None

        if not response.matches_pattern(self._config.order_id_pattern):
            print(f"[WARNING] Response file {response.file_name} does not name an order")
            self._notify(self._audit_log.record([
                (AuditEventType.RESPONSE_UNRECOGNIZED, response.file_name)
            ]))
            return None

        events = self._audit_log.record([
            (AuditEventType.JSON_CREATED, response.file_name),
            (AuditEventType.ORDER_DELIVERED, response.order_id),
        ])
        print(f"[WATCHER] {response.order_id} delivered ({response.file_name})")
        self._notify(events)
        return response.order_id

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def list_pending_orders(self) -> list[PendingOrder]:
        """Orders without an image, newest first, with patient names."""
        return self._repository.query_pending_orders()

    def list_images_for_patient(self, patient_id: str) -> list[Image]:
        """Images for a patient, oldest study first."""
        return self._repository.query_images_by_patient(patient_id)

    def list_patients(self) -> list[Patient]:
        """All patients, by last name then first name."""
        return self._repository.query_all_patients()

    def audit_tail(self, limit: int | None = None) -> list[AuditEvent]:
        """Most recent audit events, oldest first."""
        return self._audit_log.tail(
            self._config.audit_tail_limit if limit is None else limit
        )

    def order_status(self, order_id: str) -> OrderStatus | None:
        """
        Derive where an order stands from its audit trail.

        HL7_CREATED events are keyed by message text, so they are matched
        to the order through the message's ORC segment. Once delivered,
        an order stays delivered even if its message is resent.

        Returns:
            OrderStatus, or None if the order does not exist
        """
        order, own_events, message_events, image_captured = (
            self._repository.query_order_history(order_id, AuditEventType.HL7_CREATED.value)
        )
        if order is None:
            return None

        events = own_events + [
            event
            for event in message_events
            if extract_order_id(event.ref_id) == order_id
        ]
        events.sort(key=lambda event: event.event_id)

        state = OrderState.CREATED
        for event in events:
            next_state = OrderState.from_event(event.event_type)
            if next_state is not None and not state.is_terminal():
                state = next_state

        return OrderStatus(
            order_id=order_id,
            state=state,
            image_captured=image_captured,
            events=events,
        )

    def read_response_file(self, order_id: str) -> str | None:
        """
        Text of the response file the external system dropped for an order.

        Returns:
            File content, or None if no response file exists yet
        """
        for target in self._config.watch_targets():
            for suffix in target.suffixes:
                path = target.directory / f"{order_id}{suffix}"
                if path.is_file():
                    return path.read_text(encoding="utf-8")
        return None

    # ------------------------------------------------------------------
    # Notification and lifecycle
    # ------------------------------------------------------------------

    def subscribe(self, listener: AuditListener) -> Callable[[], None]:
        """
        Register a listener for newly committed audit events.

        The listener runs on the command thread after each command,
        with the events that command wrote.

        Returns:
            Function that removes the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, events: list[AuditEvent]) -> None:
        for listener in list(self._listeners):
            try:
                listener(events)
            except Exception as e:
                print(f"[WARNING] Audit listener failed: {e}")

    def start_watchers(self) -> list[WatchTarget]:
        """
        Attach a watcher to every configured response directory.

        Returns:
            The targets now being watched

        Raises:
            WatcherSetupError: If a directory is missing or watchers were
                already started
        """
        if self._watchers:
            raise WatcherSetupError("Watchers are already running")

        targets = self._config.watch_targets()
        try:
            for target in targets:
                scanner = ResponseScanner(target, self.record_delivery)
                watcher = scanner.attach(
                    self._config.poll_interval,
                    on_error=partial(self._watcher_failed, target),
                )
                self._watchers.append(watcher)
                print(f"[WATCHER] Watching {target.get_display_name()}")
        except WatcherSetupError:
            self._stop_watchers()
            raise
        return targets

    def _watcher_failed(self, target: WatchTarget, error: Exception) -> None:
        """A watch died: record it, since delivery tracking has stopped."""
        print(f"[ERROR] Watcher for {target.name} stopped: {error}")
        try:
            self._queue.run(self._record_watcher_failure, target)
        except Exception as e:
            print(f"[ERROR] Could not record watcher failure for {target.name}: {e}")

    def _record_watcher_failure(self, target: WatchTarget) -> None:
        self._notify(self._audit_log.record([
            (AuditEventType.WATCHER_FAILED, str(target.directory))
        ]))

    def _stop_watchers(self) -> None:
        for watcher in self._watchers:
            watcher.stop()
        self._watchers = []

    def shutdown(self) -> None:
        """Stop watchers, finish queued commands and close the repository."""
        self._stop_watchers()
        self._queue.stop()
        self._repository.close()

    def __enter__(self) -> "ImagingOrderOrchestrator":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.shutdown()


def create_orchestrator(
    config: ApplicationConfig | None = None,
    clock: Clock | None = None
) -> ImagingOrderOrchestrator:
    """
    Factory function to create a fully configured orchestrator.

    Args:
        config: Application configuration (uses defaults if None)
        clock: Time source (system clock if None)

    Returns:
        Configured ImagingOrderOrchestrator instance
    """
    # Use default config if not provided
    if config is None:
        config = ApplicationConfig.from_defaults()

    # Ensure directories exist before any watcher attaches
    config.ensure_directories()

    from data_access.repositories.imaging_repository import create_imaging_repository

    repository = create_imaging_repository(config.database_path)

    return ImagingOrderOrchestrator(
        config=config,
        repository=repository,
        clock=clock,
    )
