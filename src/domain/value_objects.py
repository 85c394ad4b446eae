"""
Value Objects - Immutable domain data structures.

Value objects represent domain concepts that are identified by their
values rather than a unique identity. They are immutable and comparable.
"""

import re
from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class OutboundMessage:
    """
    An HL7 message ready to be dropped for the interface engine.

    The file name is derived from the order id, so the external system
    can echo it back in its response file.
    """
    order_id: str
    text: str
    extension: str = ".hl7"

    def __post_init__(self) -> None:
        """Validate the order id is usable as a file name."""
        if not self.order_id or not self.order_id.strip():
            raise ValueError("Outbound message needs an order id")
        if "/" in self.order_id or "\\" in self.order_id:
            raise ValueError(f"Order id {self.order_id!r} is not a valid file name")

    @property
    def file_name(self) -> str:
        """Name of the file written to the outbound directory."""
        return f"{self.order_id}{self.extension}"

    def segments(self) -> list[str]:
        """Message split into its non-empty segments."""
        return [line for line in self.text.splitlines() if line]


@dataclass(frozen=True)
class ResponseFile:
    """
    A drop file recognized by its name.

    Only the name is looked at - the content is never parsed here.
    """
    file_name: str
    order_id: str
    suffix: str

    @classmethod
    def from_name(
        cls,
        file_name: str,
        suffixes: tuple[str, ...]
    ) -> "ResponseFile | None":
        """
        Classify a file name against the recognized suffixes.

        Args:
            file_name: Base name or full path of the created file
            suffixes: Recognized suffixes, e.g. (".json",)

        Returns:
            ResponseFile if the name carries one of the suffixes, None otherwise

        Examples:
            >>> ResponseFile.from_name("O123.json", (".json",)).order_id
            'O123'
            >>> ResponseFile.from_name("readme.txt", (".json",)) is None
            True
        """
        base_name = Path(file_name).name
        lowered = base_name.lower()
        for suffix in suffixes:
            if lowered.endswith(suffix.lower()) and len(base_name) > len(suffix):
                return cls(
                    file_name=base_name,
                    order_id=base_name[:-len(suffix)],
                    suffix=suffix,
                )
        return None

    def matches_pattern(self, pattern: str) -> bool:
        """Check the derived order id looks like one we issue."""
        return re.fullmatch(pattern, self.order_id) is not None


@dataclass(frozen=True)
class WatchTarget:
    """
    A directory to watch and the response suffixes expected in it.

    One target per modality (HL7 responses, optionally DICOM).
    """
    name: str
    directory: Path
    suffixes: tuple[str, ...]

    def __post_init__(self) -> None:
        """Validate suffixes."""
        if not self.suffixes:
            raise ValueError(f"Watch target {self.name} has no response suffixes")
        for suffix in self.suffixes:
            if not suffix.startswith("."):
                raise ValueError(f"Suffix {suffix!r} must start with '.'")

    def get_display_name(self) -> str:
        """Get human-readable name for display."""
        return f"{self.name} ({self.directory}, {', '.join(self.suffixes)})"
