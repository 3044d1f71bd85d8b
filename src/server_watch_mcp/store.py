# Bounded in-memory log store for captured child output

import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Deque, Optional, Tuple, Union

DEFAULT_CAPACITY = 5000


class Stream(str, Enum):
	"""Which of the child's output streams a line came from."""
	STDOUT = "stdout"
	STDERR = "stderr"


@dataclass(frozen=True)
class LogEntry:
	sequence: int
	timestamp: datetime
	stream: Stream
	content: str

	def to_dict(self):
		return {
			"sequence": self.sequence,
			"timestamp": self.timestamp.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
			"stream": self.stream.value,
			"content": self.content,
		}


def _now() -> datetime:
	now = datetime.now(timezone.utc)
	return now.replace(microsecond=now.microsecond - now.microsecond % 1000)


class LogStore:
	"""Append-only ring buffer of log entries with FIFO eviction.

	The supervisor is the only writer. Readers take a snapshot, which is an
	immutable copy unaffected by later appends or evictions.
	"""

	def __init__(self, capacity: int = DEFAULT_CAPACITY):
		if capacity < 1:
			raise ValueError(f"capacity must be at least 1, got {capacity}")
		self._capacity = capacity
		# deque(maxlen) drops the head entry in O(1) once full
		self._entries: Deque[LogEntry] = deque(maxlen=capacity)
		self._lock = threading.Lock()
		self._sequence = 0
		self._last_timestamp: Optional[datetime] = None

	@property
	def capacity(self) -> int:
		return self._capacity

	@property
	def total_appended(self) -> int:
		"""Number of entries ever accepted, including evicted ones."""
		return self._sequence

	def __len__(self) -> int:
		with self._lock:
			return len(self._entries)

	def append(self, stream: Union[Stream, str], content: str) -> Optional[LogEntry]:
		"""Append one line. Returns the stored entry, or None if the line was blank."""
		stream = Stream(stream)
		content = content.rstrip("\r\n")
		if not content.strip():
			return None
		with self._lock:
			timestamp = _now()
			if self._last_timestamp is not None and timestamp < self._last_timestamp:
				# wall clock stepped backwards
				timestamp = self._last_timestamp
			self._last_timestamp = timestamp
			self._sequence += 1
			entry = LogEntry(
				sequence=self._sequence,
				timestamp=timestamp,
				stream=stream,
				content=content,
			)
			self._entries.append(entry)
		return entry

	def snapshot(self) -> Tuple[LogEntry, ...]:
		"""Return a point-in-time copy of the current contents, oldest first."""
		with self._lock:
			return tuple(self._entries)
