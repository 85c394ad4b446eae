"""
Identifier Service - Generates order and image identifiers.

Identifiers are a prefix followed by digits: the epoch milliseconds
scaled by 1000 plus a random component. Within one process the
numeric part strictly increases, so an identifier is never issued
twice; across restarts the random component keeps collisions negligible.
"""

import secrets
import sys
import threading
from pathlib import Path

# Add src to path for imports
_src_path = Path(__file__).parent.parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from business_logic.services.clock import Clock, SystemClock

ORDER_PREFIX = "O"
IMAGE_PREFIX = "IMG"


class IdentifierGenerator:
    """
    Issues unique, time-ordered identifiers.

    Thread-safe: the last issued value is guarded by a lock.
    """

    def __init__(self, clock: Clock | None = None):
        """
        Initialize the generator.

        Args:
            clock: Time source (defaults to the system clock)
        """
        self._clock = clock or SystemClock()
        self._lock = threading.Lock()
        self._last = 0

    def _next_value(self) -> int:
        millis = int(self._clock.now().timestamp() * 1000)
        candidate = millis * 1000 + secrets.randbelow(1000)
        with self._lock:
            if candidate <= self._last:
                candidate = self._last + 1
            self._last = candidate
            return candidate

    def new_order_id(self) -> str:
        """Fresh order id, e.g. O1718035200123456."""
        return f"{ORDER_PREFIX}{self._next_value()}"

    def new_image_id(self) -> str:
        """Fresh image id, e.g. IMG1718035200123457."""
        return f"{IMAGE_PREFIX}{self._next_value()}"
