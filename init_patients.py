"""
Patient Database Initialization Script

Seeds the workflow database with the demo patients and provisions the
HL7/DICOM directories. Patients are never created by the workflow
itself, so run this once before sending orders.

Usage:
    python init_patients.py [BASE_DIR]
"""

import sys
from pathlib import Path

# Add src directory to Python path
src_path = Path(__file__).parent / "src"
if str(src_path) not in sys.path:
    sys.path.insert(0, str(src_path))

from data_access.repositories.imaging_repository import ImagingRepository
from orchestration.config import ApplicationConfig


def main():
    """Provision directories and seed patients."""
    base_dir = Path(sys.argv[1]) if len(sys.argv) > 1 else None
    config = ApplicationConfig.from_defaults(base_dir)

    print("=" * 70)
    print("PATIENT DATABASE INITIALIZATION")
    print("=" * 70)

    config.ensure_directories()
    print(f"\n✓ Directories ready under {config.hl7_in_dir.parent.parent}")

    with ImagingRepository(config.database_path) as repository:
        inserted = repository.seed_default_patients()
        if inserted:
            print(f"✓ Added {inserted} patient(s) to {config.database_path}")
        else:
            print(f"ℹ  {config.database_path} already has patients - nothing to do")

        for patient in repository.query_all_patients():
            print(f"  - {patient.patient_id}  {patient.display_name}  (MRN {patient.mrn})")


if __name__ == "__main__":
    main()
