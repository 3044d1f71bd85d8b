# Text rendering of log entries for tool results

from datetime import datetime, timezone
from typing import Iterable

from .store import LogEntry, Stream

STDERR_MARKER = "ERR:"


def format_timestamp(value: datetime) -> str:
	"""Render a timestamp as UTC ISO-8601 with millisecond precision and a trailing ``Z``."""
	value = value.astimezone(timezone.utc)
	return value.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def format_entry(entry: LogEntry, include_timestamps: bool = False) -> str:
	parts = []
	if include_timestamps:
		parts.append(f"[{format_timestamp(entry.timestamp)}]")
	if entry.stream is Stream.STDERR:
		parts.append(STDERR_MARKER)
	parts.append(entry.content)
	return " ".join(parts)


def format_entries(entries: Iterable[LogEntry], include_timestamps: bool = False) -> str:
	"""Render entries one per line, in the order given."""
	return "\n".join(format_entry(entry, include_timestamps) for entry in entries)
