"""
Tests for the Imaging Order Orchestrator.

Runs against the in-memory repository, a frozen clock and a real
temporary directory tree.
"""

import shutil
import sys
import threading
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

# Add src to path
_src_path = Path(__file__).parent.parent.parent / "src"
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.entities import AuditEvent
from domain.enums import AuditEventType, OrderState
from domain.exceptions import (
    AuditAppendError,
    OutboundWriteError,
    ReferentialIntegrityError,
    WatcherSetupError,
)
from orchestration.config import ApplicationConfig
from orchestration.orchestrator import create_orchestrator


def event_types(orchestrator):
    return [event.event_type for event in orchestrator.audit_tail()]


class TestCreateOrder:
    """Tests for create_order()."""

    def test_returns_order_id(self, orchestrator):
        """Should issue an O-prefixed order id."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")

        assert order_id.startswith("O")
        assert order_id[1:].isdigit()

    def test_order_is_pending(self, orchestrator):
        """A new order shows up on the dashboard with the patient's name."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")

        pending = orchestrator.list_pending_orders()
        assert [p.order_id for p in pending] == [order_id]
        assert pending[0].patient_name == "Alice Smith"
        assert pending[0].procedure_code == "CT Abdomen"
        assert pending[0].priority == "STAT"

    def test_audit_trail(self, orchestrator):
        """Creation writes three consecutive events."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")

        events = orchestrator.audit_tail()
        assert [e.event_type for e in events] == [
            "ORDER_CREATED", "HL7_CREATED", "WAITING_FOR_JSON"
        ]
        assert [e.event_id for e in events] == [1, 2, 3]
        assert events[0].ref_id == order_id
        assert events[1].ref_id.startswith("MSH|")
        assert events[2].ref_id == order_id

    def test_message_written_to_hl7_in(self, orchestrator, test_config):
        """The message lands in HL7/In as <orderId>.hl7."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")

        message_file = test_config.hl7_in_dir / f"{order_id}.hl7"
        assert message_file.is_file()
        text = message_file.read_text(encoding="utf-8")
        assert text == orchestrator.audit_tail()[1].ref_id
        assert f"ORC|NW|{order_id}^FAC|||STAT" in text
        assert list(test_config.hl7_in_dir.glob("*.part")) == []

    def test_unknown_patient(self, orchestrator, test_config):
        """No order, no audit event, no file for an unknown patient."""
        with pytest.raises(ReferentialIntegrityError):
            orchestrator.create_order("P999", "CT Abdomen", "STAT")

        assert orchestrator.list_pending_orders() == []
        assert orchestrator.audit_tail() == []
        assert list(test_config.hl7_in_dir.glob("*.hl7")) == []

    def test_empty_procedure_rejected(self, orchestrator):
        """Procedure and priority are required."""
        with pytest.raises(ValueError):
            orchestrator.create_order("P1", "  ", "STAT")
        with pytest.raises(ValueError):
            orchestrator.create_order("P1", "CT Abdomen", "")

    def test_distinct_ids(self, orchestrator):
        """Two orders never share an id."""
        first = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        second = orchestrator.create_order("P1", "Brain MRI", "Routine")

        assert first != second
        assert len(orchestrator.list_pending_orders()) == 2

    def test_pending_newest_first(self, orchestrator):
        """Later orders appear first on the dashboard."""
        first = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        second = orchestrator.create_order("P1", "Brain MRI", "Routine")

        assert [p.order_id for p in orchestrator.list_pending_orders()] == [second, first]

    def test_order_and_creation_event_commit_together(self, orchestrator, repository, test_config):
        """If ORDER_CREATED can't be written, the order row isn't either."""
        # Occupy the id the audit log will hand out next
        repository.append_audit_batch([
            AuditEvent(1, "2024-03-05T14:00:00.000000", "MANUAL", "x")
        ])

        with pytest.raises(AuditAppendError):
            orchestrator.create_order("P1", "CT Abdomen", "STAT")

        assert repository.count("orders") == 0
        assert orchestrator.list_pending_orders() == []
        assert list(test_config.hl7_in_dir.glob("*.hl7")) == []
        assert orchestrator.audit_log.last_event_id == 0


class TestOutboundFailure:
    """Tests for a failed message write."""

    def test_send_failure_is_audited(self, orchestrator, test_config):
        """The order exists, the failure is recorded and raised."""
        shutil.rmtree(test_config.hl7_in_dir)

        with pytest.raises(OutboundWriteError) as excinfo:
            orchestrator.create_order("P1", "CT Abdomen", "STAT")

        order_id = excinfo.value.order_id
        assert event_types(orchestrator) == ["ORDER_CREATED", "HL7_SEND_FAILED"]
        assert orchestrator.order_status(order_id).state == OrderState.SEND_FAILED

    def test_resend_recovers(self, orchestrator, test_config):
        """Resending after the directory is back puts the order on track."""
        shutil.rmtree(test_config.hl7_in_dir)
        with pytest.raises(OutboundWriteError) as excinfo:
            orchestrator.create_order("P1", "CT Abdomen", "STAT")
        order_id = excinfo.value.order_id
        test_config.hl7_in_dir.mkdir()

        message = orchestrator.resend_order_message(order_id)

        assert (test_config.hl7_in_dir / message.file_name).is_file()
        assert orchestrator.order_status(order_id).state == OrderState.WAITING_FOR_JSON

    def test_failed_rename_leaves_no_partial_file(self, orchestrator, test_config):
        """A write that fails at the rename cleans up its temporary file."""
        with patch("orchestration.orchestrator.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OutboundWriteError):
                orchestrator.create_order("P1", "CT Abdomen", "STAT")

        assert list(test_config.hl7_in_dir.glob("*.part")) == []
        assert list(test_config.hl7_in_dir.glob("*.hl7")) == []

    def test_resend_unknown_order(self, orchestrator):
        """Only existing orders can be resent."""
        with pytest.raises(ReferentialIntegrityError):
            orchestrator.resend_order_message("O404")


class TestCaptureImage:
    """Tests for capture_image()."""

    def test_capture_clears_pending(self, orchestrator):
        """A captured order leaves the dashboard."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")

        image_id = orchestrator.capture_image(order_id, "CT")

        assert image_id.startswith("IMG")
        assert orchestrator.list_pending_orders() == []
        assert event_types(orchestrator)[-1] == "IMAGE_CAPTURED"
        assert orchestrator.audit_tail()[-1].ref_id == image_id

    def test_image_listed_for_patient(self, orchestrator, test_config):
        """The image is stored against the order's patient."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        image_id = orchestrator.capture_image(order_id, "CT")

        images = orchestrator.list_images_for_patient("P1")
        assert [i.image_id for i in images] == [image_id]
        assert images[0].order_id == order_id
        assert images[0].modality == "CT"
        assert images[0].file_path.endswith(f"{image_id}.dcm")

    def test_capture_does_not_wait_for_delivery(self, orchestrator):
        """Capture is allowed before any response file arrives."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        orchestrator.capture_image(order_id, "CT")

        status = orchestrator.order_status(order_id)
        assert status.state == OrderState.WAITING_FOR_JSON
        assert status.image_captured is True

    def test_unknown_order(self, orchestrator):
        """No image, no event for an unknown order."""
        with pytest.raises(ReferentialIntegrityError):
            orchestrator.capture_image("O404", "CT")

        assert orchestrator.audit_tail() == []
        assert orchestrator.list_images_for_patient("P1") == []


class TestRecordDelivery:
    """Tests for record_delivery()."""

    def test_response_file_records_two_events(self, orchestrator):
        """O123.json gives JSON_CREATED then ORDER_DELIVERED."""
        result = orchestrator.record_delivery("O123.json")

        events = orchestrator.audit_tail()
        assert result == "O123"
        assert [(e.event_type, e.ref_id) for e in events] == [
            ("JSON_CREATED", "O123.json"),
            ("ORDER_DELIVERED", "O123"),
        ]
        assert events[1].event_id == events[0].event_id + 1

    def test_unrelated_file_ignored(self, orchestrator):
        """readme.txt leaves no trace."""
        assert orchestrator.record_delivery("readme.txt") is None
        assert orchestrator.audit_tail() == []

    def test_unrecognized_response(self, orchestrator):
        """A .json file that doesn't name an order is flagged, not delivered."""
        assert orchestrator.record_delivery("notes.json") is None

        events = orchestrator.audit_tail()
        assert [(e.event_type, e.ref_id) for e in events] == [
            ("RESPONSE_UNRECOGNIZED", "notes.json")
        ]

    def test_delivery_moves_order_to_delivered(self, orchestrator):
        """The order's derived state follows the response file."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")

        orchestrator.record_delivery(f"{order_id}.json")

        assert orchestrator.order_status(order_id).state == OrderState.DELIVERED

    def test_delivery_does_not_clear_pending(self, orchestrator):
        """Pending is about images, not delivery."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        orchestrator.record_delivery(f"{order_id}.json")

        assert [p.order_id for p in orchestrator.list_pending_orders()] == [order_id]

    def test_duplicate_delivery_recorded_again(self, orchestrator):
        """Each file creation is its own delivery event."""
        orchestrator.record_delivery("O5.json")
        orchestrator.record_delivery("O5.json")

        assert event_types(orchestrator).count("ORDER_DELIVERED") == 2


class TestOrderStatus:
    """Tests for order_status()."""

    def test_unknown_order(self, orchestrator):
        """There is no status for an order that doesn't exist."""
        assert orchestrator.order_status("O404") is None

    def test_status_collects_history(self, orchestrator):
        """History includes the message event matched by its ORC segment."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        orchestrator.create_order("P1", "Brain MRI", "Routine")

        status = orchestrator.order_status(order_id)

        assert [e.event_type for e in status.events] == [
            "ORDER_CREATED", "HL7_CREATED", "WAITING_FOR_JSON"
        ]
        assert status.state == OrderState.WAITING_FOR_JSON
        assert status.image_captured is False

    def test_status_reads_one_committed_state(self, orchestrator, repository):
        """An event committed while status is being read is left for the next read."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        message = orchestrator.audit_tail()[1].ref_id
        writer = threading.Thread(
            target=orchestrator.audit_log.append,
            args=(AuditEventType.HL7_CREATED, message),
        )
        original = repository.query_audit_by_type

        def read_with_concurrent_write(event_type):
            writer.start()
            writer.join(0.2)
            return original(event_type)

        with patch.object(repository, "query_audit_by_type", side_effect=read_with_concurrent_write):
            status = orchestrator.order_status(order_id)
        writer.join(5.0)

        assert [e.event_type for e in status.events] == [
            "ORDER_CREATED", "HL7_CREATED", "WAITING_FOR_JSON"
        ]
        assert status.state == OrderState.WAITING_FOR_JSON
        assert len(orchestrator.order_status(order_id).events) == 4

    def test_audit_tail_zero(self, orchestrator):
        """A zero limit returns no events."""
        orchestrator.create_order("P1", "CT Abdomen", "STAT")

        assert orchestrator.audit_tail(0) == []

    def test_delivered_is_terminal(self, orchestrator):
        """A resend after delivery does not move the order back."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        orchestrator.record_delivery(f"{order_id}.json")

        orchestrator.resend_order_message(order_id)

        assert orchestrator.order_status(order_id).state == OrderState.DELIVERED

    def test_read_response_file(self, orchestrator, test_config):
        """The response body can be shown once it exists."""
        order_id = orchestrator.create_order("P1", "CT Abdomen", "STAT")
        assert orchestrator.read_response_file(order_id) is None

        (test_config.hl7_out_dir / f"{order_id}.json").write_text('{"status": "ok"}')

        assert orchestrator.read_response_file(order_id) == '{"status": "ok"}'


class TestSubscribers:
    """Tests for audit event notifications."""

    def test_listener_receives_committed_events(self, orchestrator):
        """Each command notifies with the events it wrote."""
        listener = Mock()
        orchestrator.subscribe(listener)

        orchestrator.record_delivery("O9.json")

        listener.assert_called_once()
        events = listener.call_args[0][0]
        assert [e.event_type for e in events] == ["JSON_CREATED", "ORDER_DELIVERED"]

    def test_unsubscribe(self, orchestrator):
        """An unsubscribed listener hears nothing more."""
        listener = Mock()
        unsubscribe = orchestrator.subscribe(listener)
        unsubscribe()

        orchestrator.record_delivery("O9.json")

        listener.assert_not_called()

    def test_failing_listener_does_not_break_command(self, orchestrator):
        """A broken listener is reported, the command still succeeds."""
        orchestrator.subscribe(Mock(side_effect=RuntimeError("display gone")))

        assert orchestrator.record_delivery("O9.json") == "O9"
        assert len(orchestrator.audit_tail()) == 2


class TestWatchers:
    """Tests for watcher lifecycle."""

    def test_start_watchers_returns_targets(self, orchestrator, test_config):
        """The HL7 response directory is watched by default."""
        targets = orchestrator.start_watchers()

        assert [t.directory for t in targets] == [test_config.hl7_out_dir]

    def test_cannot_start_twice(self, orchestrator):
        """Watchers are started once per process."""
        orchestrator.start_watchers()

        with pytest.raises(WatcherSetupError):
            orchestrator.start_watchers()

    def test_missing_directory(self, orchestrator, test_config):
        """A missing response directory fails startup."""
        test_config.hl7_out_dir.rmdir()

        with pytest.raises(WatcherSetupError):
            orchestrator.start_watchers()


class TestFactory:
    """Tests for create_orchestrator()."""

    def test_creates_directories_and_seeds(self, tmp_path, fixed_clock):
        """The factory provisions folders and demo patients."""
        config = ApplicationConfig.for_testing(tmp_path)

        with create_orchestrator(config, fixed_clock) as orchestrator:
            names = [p.display_name for p in orchestrator.list_patients()]

        assert config.hl7_in_dir.is_dir()
        assert config.database_path.is_file()
        assert names == ["Bob Jones", "Carol Lee", "Alice Smith"]

    def test_state_survives_restart(self, tmp_path, fixed_clock):
        """Orders and audit ids persist across processes."""
        config = ApplicationConfig.for_testing(tmp_path)
        with create_orchestrator(config, fixed_clock) as orchestrator:
            order_id = orchestrator.create_order("P1001", "Chest X-Ray", "Routine")

        with create_orchestrator(config, fixed_clock) as orchestrator:
            assert [p.order_id for p in orchestrator.list_pending_orders()] == [order_id]
            orchestrator.record_delivery(f"{order_id}.json")
            assert [e.event_id for e in orchestrator.audit_tail()] == [1, 2, 3, 4, 5]
