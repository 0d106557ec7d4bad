"""
Upload Progress

Bytes of a part are "in flight" until storage acknowledges the part, then
they move to the committed total. A part that fails and is retried starts
its in-flight count over, which would make the raw percentage drop; the
reported value never goes backwards.
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Optional

# Progress callback type: receives an integer percentage
ProgressCallback = Callable[[int], None]


@dataclass
class UploadProgress:
    """Byte accounting for one upload."""
    total_size: int
    total_parts: int
    committed_bytes: int = 0
    committed_parts: int = 0
    in_flight: Dict[int, int] = field(default_factory=dict)  # part_number -> bytes sent

    @property
    def in_flight_bytes(self) -> int:
        return sum(self.in_flight.values())

    @property
    def sent_bytes(self) -> int:
        return min(self.committed_bytes + self.in_flight_bytes, self.total_size)

    @property
    def is_complete(self) -> bool:
        return self.committed_parts >= self.total_parts


class ProgressAggregator:
    """
    Merges per-part byte counts into one monotonic percentage.

    100 is reported once, when the last part commits; until then the
    value is capped at 99 even if every byte has left the machine.
    """

    def __init__(self, total_size: int, total_parts: int,
                 callback: Optional[ProgressCallback] = None):
        self.progress = UploadProgress(total_size=total_size, total_parts=total_parts)
        self.callback = callback
        self.percent = 0
        self._committed: set = set()

    def update(self, part_number: int, bytes_sent: int):
        """Record that *bytes_sent* bytes of a part are on the wire."""
        if part_number in self._committed:
            return
        self.progress.in_flight[part_number] = bytes_sent
        self._emit()

    def reset(self, part_number: int):
        """Forget in-flight bytes of a part that failed."""
        self.progress.in_flight.pop(part_number, None)

    def commit(self, part_number: int, part_size: int):
        """Move a part from in flight to committed. Repeated commits are ignored."""
        if part_number in self._committed:
            return
        self._committed.add(part_number)
        self.progress.in_flight.pop(part_number, None)
        self.progress.committed_bytes += part_size
        self.progress.committed_parts += 1
        self._emit()

    def _compute(self) -> int:
        progress = self.progress
        if progress.is_complete:
            return 100
        if progress.total_size <= 0:
            return 0
        percent = progress.sent_bytes * 100 // progress.total_size
        return min(percent, 99)

    def _emit(self):
        percent = max(self.percent, self._compute())
        if percent == self.percent:
            return
        self.percent = percent
        if self.callback:
            self.callback(percent)
