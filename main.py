#!/usr/bin/env python
"""
Main entry point for the Imaging Order Workflow.

Usage:
    python main.py                                   # Interactive dashboard
    python main.py --watch                           # Track deliveries until Ctrl-C
    python main.py --pending                         # Show the imaging dashboard
    python main.py --audit 20                        # Show the last 20 audit events
    python main.py --order P1001 "CT Abdomen" STAT   # Send an order
    python main.py --capture O1718035200123456 CT    # Capture an image
    python main.py --status O1718035200123456        # Show an order's state
"""

import sys
import argparse
import time
from pathlib import Path

# Add src to path - must be done before any local imports
_src_path = Path(__file__).parent / "src"
sys.path.insert(0, str(_src_path))

from domain.exceptions import ImagingWorkflowError
from orchestration import ApplicationConfig, ImagingOrderOrchestrator, create_orchestrator
from presentation import (
    audit_formatter,
    image_formatter,
    input_collector,
    patient_formatter,
    pending_order_formatter,
    status_formatter,
)


def run_dashboard(orchestrator: ImagingOrderOrchestrator) -> None:
    """
    Interactive dashboard: send orders, capture images, browse the audit trail.

    Response files are tracked in the background while the menu is open.
    """
    print("\n" + "=" * 70)
    print("ORDER2IMAGE - INTERACTIVE DASHBOARD")
    print("=" * 70)

    orchestrator.start_watchers()

    actions = [
        "Send order",
        "Capture image",
        "Imaging dashboard",
        "Audit & timeline",
        "Captured images for patient",
        "Patient details (response file)",
        "Quit",
    ]

    while True:
        action = input_collector.get_choice("Select action", actions)

        try:
            if action == "Send order":
                request = input_collector.collect_order_request(orchestrator.list_patients())
                if request:
                    order_id = orchestrator.create_order(*request)
                    print(f"\n✓ Order {order_id} sent")

            elif action == "Capture image":
                order = input_collector.select_pending_order(orchestrator.list_pending_orders())
                if order:
                    modality = input_collector.collect_modality(order.procedure_code)
                    image_id = orchestrator.capture_image(order.order_id, modality)
                    print(f"\n✓ Image {image_id} captured")

            elif action == "Imaging dashboard":
                print(pending_order_formatter.format_pending_orders(orchestrator.list_pending_orders()))

            elif action == "Audit & timeline":
                print(audit_formatter.format_timeline(orchestrator.audit_tail()))

            elif action == "Captured images for patient":
                patient = input_collector.select_patient(orchestrator.list_patients())
                if patient:
                    print(image_formatter.format_image_list(
                        orchestrator.list_images_for_patient(patient.patient_id)
                    ))

            elif action == "Patient details (response file)":
                order_id = input_collector.get_string("Order id")
                content = orchestrator.read_response_file(order_id)
                print(content if content is not None else "\n[INFO] Response file not found.")

            else:
                return

        except ImagingWorkflowError as e:
            print(f"\n✗ {e}")


def run_watch(orchestrator: ImagingOrderOrchestrator) -> None:
    """Attach the watchers and print every new audit event until Ctrl-C."""
    def print_events(events):
        for event in events:
            print(audit_formatter.format_event(event))

    orchestrator.subscribe(print_events)
    orchestrator.start_watchers()
    print("\n[INFO] Watching for response files (Ctrl-C to stop)")
    while True:
        time.sleep(1)


def main():
    """Main entry point."""

    parser = argparse.ArgumentParser(
        description="Imaging Order Workflow",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Modes:
  dashboard (default)  - Interactive menu with background delivery tracking
  watch                - Record response-file deliveries until interrupted
        """
    )

    parser.add_argument("--watch", action="store_true",
                        help="Watch response directories and record deliveries")
    parser.add_argument("--pending", action="store_true",
                        help="Show orders waiting for image capture")
    parser.add_argument("--patients", action="store_true",
                        help="List patients")
    parser.add_argument("--audit", type=int, metavar="N",
                        help="Show the last N audit events")
    parser.add_argument("--images", metavar="PATIENT_ID",
                        help="Show captured images for a patient")
    parser.add_argument("--order", nargs=3, metavar=("PATIENT_ID", "PROCEDURE", "PRIORITY"),
                        help="Create an order and write its HL7 message")
    parser.add_argument("--resend", metavar="ORDER_ID",
                        help="Write an order's HL7 message again")
    parser.add_argument("--capture", nargs="+", metavar="ORDER_ID [MODALITY]",
                        help="Capture an image for an order (modality defaults to CT)")
    parser.add_argument("--status", metavar="ORDER_ID",
                        help="Show the derived state of an order")
    parser.add_argument("--base-dir", type=Path,
                        help="Root directory for HL7/DICOM folders and the database")
    parser.add_argument("--config", type=Path,
                        help="Load configuration from a JSON file")

    args = parser.parse_args()

    try:
        if args.config:
            config = ApplicationConfig.from_json_file(args.config)
        else:
            config = ApplicationConfig.from_defaults(args.base_dir)

        with create_orchestrator(config) as orchestrator:
            if args.patients:
                print(patient_formatter.format_patient_list(orchestrator.list_patients()))

            elif args.pending:
                print(pending_order_formatter.format_pending_orders(orchestrator.list_pending_orders()))

            elif args.audit is not None:
                print(audit_formatter.format_timeline(orchestrator.audit_tail(args.audit)))

            elif args.images:
                print(image_formatter.format_image_list(orchestrator.list_images_for_patient(args.images)))

            elif args.order:
                order_id = orchestrator.create_order(*args.order)
                print(f"\n✓ Order {order_id} sent")

            elif args.resend:
                message = orchestrator.resend_order_message(args.resend)
                print(f"\n✓ {message.file_name} written")

            elif args.capture:
                order_id = args.capture[0]
                modality = args.capture[1] if len(args.capture) > 1 else "CT"
                image_id = orchestrator.capture_image(order_id, modality)
                print(f"\n✓ Image {image_id} captured")

            elif args.status:
                status = orchestrator.order_status(args.status)
                if status is None:
                    print(f"\n✗ Unknown order: {args.status}")
                    sys.exit(1)
                print(status_formatter.format_status(status))

            elif args.watch:
                run_watch(orchestrator)

            else:
                run_dashboard(orchestrator)

    except KeyboardInterrupt:
        print("\n\n[INTERRUPTED] Stopped by user")
        sys.exit(1)

    except ImagingWorkflowError as e:
        print(f"\n[ERROR] {e}")
        sys.exit(1)

    except (OSError, ValueError) as e:
        print(f"\n[ERROR] {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
