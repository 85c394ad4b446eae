"""
Global test configuration.

Shared fixtures for the workflow tests: a frozen clock, a config rooted
in tmp_path with all directories provisioned, an in-memory repository
seeded with one patient, and an orchestrator wired to all of them.
"""
import sys
from datetime import datetime, timedelta
from pathlib import Path

import pytest

_src_path = Path(__file__).parent.parent / "src"
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from business_logic.services.clock import FixedClock
from data_access.repositories.imaging_repository import ImagingRepository
from domain.entities import Patient
from orchestration.config import ApplicationConfig
from orchestration.orchestrator import ImagingOrderOrchestrator


@pytest.fixture
def fixed_clock():
    """Clock starting at 2024-03-05 14:07:09.250, advancing 1s per read."""
    return FixedClock(datetime(2024, 3, 5, 14, 7, 9, 250000), step=timedelta(seconds=1))


@pytest.fixture
def test_config(tmp_path):
    """Config rooted in tmp_path with every directory created."""
    config = ApplicationConfig.for_testing(tmp_path)
    config.ensure_directories()
    return config


@pytest.fixture
def patient():
    """Patient used by the end-to-end scenarios."""
    return Patient(
        patient_id="P1",
        mrn="1",
        first_name="Alice",
        last_name="Smith",
        dob="1975-02-15",
        gender="F",
        allergies="Penicillin",
    )


@pytest.fixture
def repository(patient):
    """In-memory repository holding the test patient."""
    repo = ImagingRepository(":memory:")
    repo.insert_patient(patient)
    yield repo
    repo.close()


@pytest.fixture
def orchestrator(test_config, repository, fixed_clock):
    """Orchestrator over the in-memory repository and frozen clock."""
    orch = ImagingOrderOrchestrator(
        config=test_config,
        repository=repository,
        clock=fixed_clock,
    )
    yield orch
    orch.shutdown()
