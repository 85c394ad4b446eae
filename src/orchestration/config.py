"""
Application Configuration.

Centralized configuration for the imaging order workflow. All
directory paths are fixed values handed to the orchestrator and the
watchers at construction; nothing is read from the environment.
"""

import json
import re
import sys
from dataclasses import dataclass, fields, replace
from pathlib import Path

# Add src to path for imports
_src_path = Path(__file__).parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.value_objects import WatchTarget

_PATH_FIELDS = {
    "hl7_in_dir", "hl7_out_dir", "hl7_processed_dir", "hl7_error_dir",
    "dicom_in_dir", "dicom_out_dir", "dicom_processed_dir", "dicom_error_dir",
    "image_store_dir", "database_path",
}
_TUPLE_FIELDS = {"hl7_response_suffixes", "dicom_response_suffixes"}


@dataclass(frozen=True)
class ApplicationConfig:
    """
    Central configuration for the application.

    "In" directories are where the external systems pick files up;
    "Out" directories are where they drop their responses.
    """
    # HL7 interface engine directories
    hl7_in_dir: Path
    hl7_out_dir: Path
    hl7_processed_dir: Path
    hl7_error_dir: Path

    # Imaging capture directories
    dicom_in_dir: Path
    dicom_out_dir: Path
    dicom_processed_dir: Path
    dicom_error_dir: Path

    # Storage
    image_store_dir: Path
    database_path: Path

    # File naming
    outbound_extension: str = ".hl7"
    hl7_response_suffixes: tuple[str, ...] = (".json",)
    dicom_response_suffixes: tuple[str, ...] = ()
    order_id_pattern: str = r"^O\d+$"

    # Runtime settings
    poll_interval: float = 0.5
    audit_tail_limit: int = 100

    def __post_init__(self):
        """Validate configuration after initialization."""
        if not self.outbound_extension.startswith("."):
            raise ValueError(f"Outbound extension {self.outbound_extension!r} must start with '.'")
        for suffix in self.hl7_response_suffixes + self.dicom_response_suffixes:
            if not suffix.startswith("."):
                raise ValueError(f"Response suffix {suffix!r} must start with '.'")
        try:
            re.compile(self.order_id_pattern)
        except re.error as e:
            raise ValueError(f"Invalid order id pattern {self.order_id_pattern!r}: {e}") from e
        if self.poll_interval <= 0:
            raise ValueError("Poll interval must be positive")
        if self.audit_tail_limit <= 0:
            raise ValueError("Audit tail limit must be positive")

    @classmethod
    def from_defaults(cls, base_path: Path | None = None) -> "ApplicationConfig":
        """
        Create configuration with default values.

        Args:
            base_path: Root for all directories (defaults to the working directory)

        Returns:
            ApplicationConfig with standard defaults
        """
        base_path = Path(base_path) if base_path else Path.cwd()

        return cls(
            hl7_in_dir=base_path / "HL7" / "In",
            hl7_out_dir=base_path / "HL7" / "Out",
            hl7_processed_dir=base_path / "HL7" / "In" / "Processed",
            hl7_error_dir=base_path / "HL7" / "In" / "Error",
            dicom_in_dir=base_path / "DICOM" / "In",
            dicom_out_dir=base_path / "DICOM" / "Out",
            dicom_processed_dir=base_path / "DICOM" / "In" / "Processed",
            dicom_error_dir=base_path / "DICOM" / "In" / "Error",
            image_store_dir=base_path / "MiniPACS" / "DICOM" / "Out",
            database_path=base_path / "data" / "db" / "order2image.sqlite",
        )

    @classmethod
    def for_testing(cls, base_path: Path | None = None) -> "ApplicationConfig":
        """
        Create configuration for testing environment.

        Returns:
            ApplicationConfig with testing defaults
        """
        base_path = Path(base_path) if base_path else Path("/tmp/imaging_workflow_test")

        return replace(
            cls.from_defaults(base_path),
            database_path=base_path / "order2image_test.sqlite",
            poll_interval=0.05,
        )

    @classmethod
    def from_json_file(cls, path: Path | str) -> "ApplicationConfig":
        """
        Load configuration from a JSON file.

        Keys override the defaults. Relative paths are resolved against
        the file's directory, which is also the default base path.

        Raises:
            FileNotFoundError: If the file does not exist
            ValueError: If the file has unknown keys or invalid values
        """
        path = Path(path)
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object")

        base_path = path.parent
        if "base_path" in data:
            base_path = base_path / data.pop("base_path")
        config = cls.from_defaults(base_path)

        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown configuration keys: {', '.join(sorted(unknown))}")

        overrides = {}
        for key, value in data.items():
            if key in _PATH_FIELDS:
                overrides[key] = path.parent / value
            elif key in _TUPLE_FIELDS:
                overrides[key] = tuple(value)
            else:
                overrides[key] = value

        return replace(config, **overrides)

    def watch_targets(self) -> list[WatchTarget]:
        """
        Directories the response watchers attach to.

        The HL7 response directory is always watched; the DICOM one
        only when response suffixes are configured for it.
        """
        targets = [WatchTarget("HL7", self.hl7_out_dir, self.hl7_response_suffixes)]
        if self.dicom_response_suffixes:
            targets.append(WatchTarget("DICOM", self.dicom_out_dir, self.dicom_response_suffixes))
        return targets

    def ensure_directories(self) -> None:
        """Create all required directories if they don't exist."""
        for dir_path in [
            self.hl7_in_dir, self.hl7_out_dir, self.hl7_processed_dir, self.hl7_error_dir,
            self.dicom_in_dir, self.dicom_out_dir, self.dicom_processed_dir, self.dicom_error_dir,
            self.image_store_dir,
        ]:
            dir_path.mkdir(parents=True, exist_ok=True)
        self.database_path.parent.mkdir(parents=True, exist_ok=True)
