# Read-only queries over a LogStore snapshot

from typing import List, Optional, Union

from .store import LogEntry, LogStore, Stream

DEFAULT_LIMIT = 100
BOTH_STREAMS = "both"


def _stream_filter(stream: Optional[Union[Stream, str]]) -> Optional[Stream]:
	if stream is None:
		return None
	if isinstance(stream, Stream):
		return stream
	if stream == BOTH_STREAMS:
		return None
	return Stream(stream)


def recent_logs(store: LogStore, limit: int = DEFAULT_LIMIT, stream: Optional[Union[Stream, str]] = BOTH_STREAMS) -> List[LogEntry]:
	"""Return the most recent ``limit`` entries, oldest first.

	``stream`` keeps only entries from ``stdout`` or ``stderr``; ``both`` or
	None keeps everything. The filter is applied before the limit.
	"""
	wanted = _stream_filter(stream)
	entries = store.snapshot()
	if wanted is not None:
		entries = [entry for entry in entries if entry.stream is wanted]
	limit = max(0, limit)
	if limit == 0:
		return []
	return list(entries[-limit:])


def search_logs(store: LogStore, query: str) -> List[LogEntry]:
	"""Case-insensitive substring search over every entry, chronological."""
	needle = (query or "").lower()
	return [entry for entry in store.snapshot() if needle in entry.content.lower()]
