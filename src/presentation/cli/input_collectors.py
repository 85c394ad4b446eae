"""
CLI Input Collectors - User interaction layer for the ordering screen.

This module handles all console-based user interactions, keeping them
separate from the orchestrator. The collectors only return choices;
the caller turns them into commands.
"""

from pathlib import Path
import sys

# Add src to path for imports
_src_path = Path(__file__).parent.parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.entities import Patient, PendingOrder
from domain.enums import Modality, Priority, Procedure


class InputCollector:
    """
    Collects user input from the command line.

    Keeps prompting until it gets a valid answer, so callers always
    receive a usable value.
    """

    def get_yes_no(self, prompt: str) -> bool:
        """
        Get yes/no response from user.

        Args:
            prompt: Question to ask user

        Returns:
            True for yes, False for no
        """
        while True:
            response = input(prompt).strip().lower()
            if response in ('y', 'yes'):
                return True
            if response in ('n', 'no'):
                return False
            print("Please enter 'y' or 'n'")

    def get_string(
        self,
        prompt: str,
        default: str | None = None,
        required: bool = True
    ) -> str:
        """
        Get string input from user.

        Args:
            prompt: Prompt to display
            default: Value used when the user just presses Enter
            required: Keep prompting until something is entered

        Returns:
            User's input or default value
        """
        suffix = f" (default: {default})" if default else ""
        while True:
            user_input = input(f"{prompt}{suffix}: ").strip()
            if user_input:
                return user_input
            if default is not None:
                return default
            if not required:
                return ""
            print("Input is required. Please enter a value.")

    def get_choice(
        self,
        prompt: str,
        choices: list[str],
        display_list: bool = True
    ) -> str:
        """
        Get choice from list of options.

        Accepts the 1-based number or the text of a choice
        (case-insensitive).

        Args:
            prompt: Prompt to display
            choices: List of valid choices
            display_list: If True, display numbered list of choices

        Returns:
            User's choice from the list
        """
        if display_list:
            print()
            for i, choice in enumerate(choices, 1):
                print(f"  {i}. {choice}")
            print()

        while True:
            response = input(f"{prompt}: ").strip()

            if response.isdigit():
                index = int(response) - 1
                if 0 <= index < len(choices):
                    return choices[index]

            for choice in choices:
                if choice.lower() == response.lower():
                    return choice

            print(f"Invalid choice. Please select from: {', '.join(choices)}")

    def select_patient(self, patients: list[Patient]) -> Patient | None:
        """
        Let the user pick a patient.

        Returns:
            The selected patient, or None if there are none to pick
        """
        if not patients:
            print("\n[INFO] No patients available")
            return None

        labels = [f"{p.display_name} ({p.patient_id})" for p in patients]
        choice = self.get_choice("Select patient", labels)
        return patients[labels.index(choice)]

    def collect_order_request(self, patients: list[Patient]) -> tuple[str, str, str] | None:
        """
        Collect everything needed to send an imaging order.

        Returns:
            (patient_id, procedure, priority), or None if the user backs out
        """
        patient = self.select_patient(patients)
        if patient is None:
            return None

        print(f"\nRequest Imaging for {patient.display_name}")
        procedure = self.get_choice("Procedure", Procedure.choices())
        priority = self.get_choice("Priority", [p.value for p in Priority])

        if not self.get_yes_no(f"Send {procedure} ({priority}) order? (y/n): "):
            print("\n[CANCELLED] Order not sent")
            return None

        return patient.patient_id, procedure, priority

    def select_pending_order(self, orders: list[PendingOrder]) -> PendingOrder | None:
        """
        Let the user pick a pending order to capture an image for.

        Returns:
            The selected order, or None if nothing is pending
        """
        if not orders:
            print("\n[INFO] No pending orders")
            return None

        labels = [f"{o.procedure_code} - {o.patient_name} ({o.order_id})" for o in orders]
        choice = self.get_choice("Select order", labels)
        return orders[labels.index(choice)]

    def collect_modality(self, procedure: str | None = None) -> str:
        """
        Ask for the capture modality, suggesting the procedure's usual one.

        Returns:
            Modality code, e.g. "CT"
        """
        default = None
        if procedure:
            try:
                default = Procedure(procedure).get_modality().value
            except ValueError:
                default = None

        while True:
            raw = self.get_string("Modality (CT/CR/MR)", default=default)
            try:
                return Modality.from_string(raw).value
            except ValueError as e:
                print(f"[WARNING] {e}")


# Convenience instance for easy import
input_collector = InputCollector()
