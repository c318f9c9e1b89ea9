"""Clocks returning the current time in Unix milliseconds.

The purchase core takes any zero-argument callable returning millis;
VirtualClock is a controllable one for the local gateway and for tests.
"""

import threading
import time
from typing import Optional

from iap_entitlements.logging_config import get_logger

logger = get_logger(__name__)


def system_clock() -> int:
    """Current wall-clock time in milliseconds."""
    return int(time.time() * 1000)


class VirtualClock:
    """Virtual clock that only moves when told to.

    Calling the instance returns the current virtual time in millis, so it
    can be passed anywhere a clock callable is expected.
    """

    def __init__(self, start_millis: Optional[int] = None) -> None:
        self._lock = threading.RLock()
        self._virtual_time_millis = start_millis if start_millis is not None else system_clock()

    def __call__(self) -> int:
        return self.get_current_time_millis()

    def get_current_time_millis(self) -> int:
        with self._lock:
            return self._virtual_time_millis

    def advance_time(self, days: int = 0, hours: int = 0, minutes: int = 0, millis: int = 0) -> int:
        """Advance virtual time.

        Returns:
            New virtual time in millis

        Raises:
            ValueError: If any value is negative
        """
        if days < 0 or hours < 0 or minutes < 0 or millis < 0:
            raise ValueError("Cannot advance time backwards, negative values are not allowed")

        delta = ((days * 24 + hours) * 60 + minutes) * 60 * 1000 + millis
        with self._lock:
            old_time = self._virtual_time_millis
            self._virtual_time_millis += delta
            logger.debug(
                "virtual_time_advanced",
                old_time_millis=old_time,
                new_time_millis=self._virtual_time_millis,
            )
            return self._virtual_time_millis

    def set_time(self, timestamp_millis: int) -> int:
        """Jump to a specific timestamp.

        Raises:
            ValueError: If the timestamp is before the current virtual time
        """
        with self._lock:
            if timestamp_millis < self._virtual_time_millis:
                raise ValueError(
                    f"cannot set time backwards, current: {self._virtual_time_millis}, "
                    f"requested: {timestamp_millis}"
                )
            self._virtual_time_millis = timestamp_millis
            return timestamp_millis
