# Child process supervision: spawn, drain output into the LogStore, report exit

import asyncio
import codecs
import logging
import shlex
import signal
import sys
from enum import Enum
from typing import Any, BinaryIO, Dict, List, Optional, Sequence

from .store import LogStore, Stream

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
EXIT_POLL_INTERVAL = 0.05
# How long to keep draining after exit before the exit is recorded
DRAIN_GRACE = 0.5


class ChildState(str, Enum):
	NEVER_STARTED = "never-started"
	RUNNING = "running"
	EXITED_ZERO = "exited-zero"
	EXITED_NONZERO = "exited-nonzero"
	EXITED_BY_SIGNAL = "exited-by-signal"
	FAILED_TO_SPAWN = "failed-to-spawn"


TERMINAL_STATES = frozenset({
	ChildState.EXITED_ZERO,
	ChildState.EXITED_NONZERO,
	ChildState.EXITED_BY_SIGNAL,
	ChildState.FAILED_TO_SPAWN,
})


class SpawnError(str, Enum):
	NOT_FOUND = "not-found"
	PERMISSION_DENIED = "permission-denied"
	OS_ERROR = "os-error"


# Exit codes used when the host exits together with the child
_SPAWN_EXIT_CODES = {
	SpawnError.NOT_FOUND: 127,
	SpawnError.PERMISSION_DENIED: 126,
}


def _binary_stream(stream) -> Optional[BinaryIO]:
	if stream is None:
		return None
	return getattr(stream, "buffer", stream)


def _signal_name(signum: int) -> str:
	try:
		return signal.Signals(signum).name
	except ValueError:
		return f"signal {signum}"


class LineSplitter:
	"""Decodes raw chunks and splits them into complete lines.

	A chunk ending mid-line leaves the partial line pending; it is prefixed to
	the next chunk. Multi-byte characters split across chunks are reassembled
	by the incremental decoder. ``close()`` returns whatever is still pending
	when the stream ends, so an unterminated last line is kept.
	"""

	def __init__(self, encoding: str = "utf-8"):
		self._decoder = codecs.getincrementaldecoder(encoding)(errors="replace")
		self._pending = ""

	def feed(self, chunk: bytes) -> List[str]:
		lines = (self._pending + self._decoder.decode(chunk)).split("\n")
		self._pending = lines.pop()
		return lines

	def close(self) -> List[str]:
		rest = self._pending + self._decoder.decode(b"", final=True)
		self._pending = ""
		return [rest] if rest else []


class ProcessSupervisor:
	"""Owns the child process and is the only writer into the LogStore.

	Every failure (spawn error, nonzero exit, signal) is terminal for the child
	only: it is recorded on the supervisor, logged once, and never raised.
	"""

	def __init__(
		self,
		store: LogStore,
		command: str,
		args: Sequence[str] = (),
		passthrough_stdin: bool = True,
		stdout_sink: Optional[BinaryIO] = None,
		stderr_sink: Optional[BinaryIO] = None,
		chunk_size: int = CHUNK_SIZE,
	):
		self.store = store
		self.command = command
		self.args = list(args)
		self._passthrough_stdin = passthrough_stdin
		self._sinks: Dict[Stream, Optional[BinaryIO]] = {
			Stream.STDOUT: stdout_sink if stdout_sink is not None else _binary_stream(sys.stdout),
			Stream.STDERR: stderr_sink if stderr_sink is not None else _binary_stream(sys.stderr),
		}
		self._chunk_size = chunk_size
		self._process: Optional[asyncio.subprocess.Process] = None
		self._wait_task: Optional[asyncio.Future] = None
		self._drain_tasks: List[asyncio.Future] = []
		self.state = ChildState.NEVER_STARTED
		self.returncode: Optional[int] = None
		self.signal_name: Optional[str] = None
		self.spawn_error: Optional[SpawnError] = None
		self.spawn_error_message: Optional[str] = None

	@property
	def display_command(self) -> str:
		return shlex.join([self.command, *self.args])

	@property
	def pid(self) -> Optional[int]:
		return self._process.pid if self._process is not None else None

	@property
	def finished(self) -> bool:
		return self.state in TERMINAL_STATES

	@property
	def exit_code(self) -> Optional[int]:
		"""Exit code for a host that exits with its child, or None while running."""
		if self.state in (ChildState.EXITED_ZERO, ChildState.EXITED_NONZERO):
			return self.returncode
		if self.state is ChildState.EXITED_BY_SIGNAL:
			return 1
		if self.state is ChildState.FAILED_TO_SPAWN:
			return _SPAWN_EXIT_CODES.get(self.spawn_error, 1)
		return None

	def status(self) -> Dict[str, Any]:
		return {
			"command": self.command,
			"args": list(self.args),
			"pid": self.pid,
			"state": self.state.value,
			"exit_code": self.returncode if self.signal_name is None else None,
			"signal": self.signal_name,
			"spawn_error": self.spawn_error.value if self.spawn_error else None,
			"spawn_error_message": self.spawn_error_message,
		}

	async def start(self) -> bool:
		"""Spawn the child. Returns False if it could not be started."""
		if self.state is not ChildState.NEVER_STARTED:
			raise RuntimeError(f"Child process already {self.state.value}")
		stdin = None if self._passthrough_stdin else asyncio.subprocess.DEVNULL
		try:
			self._process = await asyncio.create_subprocess_exec(
				self.command,
				*self.args,
				stdin=stdin,
				stdout=asyncio.subprocess.PIPE,
				stderr=asyncio.subprocess.PIPE,
			)
		except FileNotFoundError as e:
			self._record_spawn_failure(SpawnError.NOT_FOUND, f"Command not found: {self.command}", e)
			return False
		except PermissionError as e:
			self._record_spawn_failure(SpawnError.PERMISSION_DENIED, f"Permission denied: {self.command}", e)
			return False
		except OSError as e:
			self._record_spawn_failure(SpawnError.OS_ERROR, f"Failed to start child process: {e}", e)
			return False
		self.state = ChildState.RUNNING
		logger.info("Started child process: %s (pid %d)", self.display_command, self._process.pid)
		return True

	async def wait(self) -> ChildState:
		"""Wait for the child to exit and record the terminal state.

		Output already written before the exit is drained first, for at most
		``DRAIN_GRACE`` seconds. Descendants that keep the pipes open do not
		delay the exit; their output keeps flowing into the store.
		"""
		if self._process is None:
			return self.state
		if self._wait_task is None:
			self._wait_task = asyncio.ensure_future(self._wait_for_exit())
		# cancelling one waiter must not stop the exit bookkeeping
		return await asyncio.shield(self._wait_task)

	async def run(self) -> ChildState:
		if await self.start():
			return await self.wait()
		return self.state

	async def terminate(self, timeout: float = 5.0) -> None:
		"""Stop the child: SIGTERM first, SIGKILL after ``timeout`` seconds.

		Also stops reading output that descendants of the child still hold open.
		"""
		process = self._process
		if process is None:
			return
		if process.returncode is None:
			logger.info("Stopping child process (pid %d)", process.pid)
			try:
				process.terminate()
			except ProcessLookupError:
				pass
			try:
				await asyncio.wait_for(self.wait(), timeout)
			except asyncio.TimeoutError:
				logger.warning("Child process did not stop after %.1fs, killing it", timeout)
				try:
					process.kill()
				except ProcessLookupError:
					pass
		await self.wait()
		await self._stop_draining()

	async def _wait_for_exit(self) -> ChildState:
		process = self._process
		self._drain_tasks = [
			asyncio.ensure_future(self._drain(process.stdout, Stream.STDOUT)),
			asyncio.ensure_future(self._drain(process.stderr, Stream.STDERR)),
		]
		# process.wait() only returns once the pipes close; returncode is set at exit
		while process.returncode is None:
			await asyncio.sleep(EXIT_POLL_INTERVAL)
		await asyncio.wait(self._drain_tasks, timeout=DRAIN_GRACE)
		self._record_exit(process.returncode)
		return self.state

	async def _stop_draining(self) -> None:
		pending = [task for task in self._drain_tasks if not task.done()]
		if not pending:
			return
		logger.debug("Stopped reading output still held open by %d stream(s)", len(pending))
		for task in pending:
			task.cancel()
		await asyncio.gather(*pending, return_exceptions=True)

	async def _drain(self, reader: asyncio.StreamReader, stream: Stream) -> None:
		splitter = LineSplitter()
		while True:
			chunk = await reader.read(self._chunk_size)
			if not chunk:
				break
			self._forward(stream, chunk)
			for line in splitter.feed(chunk):
				self.store.append(stream, line)
		for line in splitter.close():
			self.store.append(stream, line)

	def _forward(self, stream: Stream, chunk: bytes) -> None:
		sink = self._sinks.get(stream)
		if sink is None:
			return
		try:
			sink.write(chunk)
			sink.flush()
		except (OSError, ValueError) as e:
			logger.warning("Stopped forwarding child %s to the terminal: %s", stream.value, e)
			self._sinks[stream] = None

	def _record_exit(self, returncode: int) -> None:
		if self.finished:
			return
		self.returncode = returncode
		if returncode < 0:
			self.signal_name = _signal_name(-returncode)
			self.state = ChildState.EXITED_BY_SIGNAL
			logger.warning("Child process killed by signal: %s", self.signal_name)
		elif returncode == 0:
			self.state = ChildState.EXITED_ZERO
			logger.info("Child process exited successfully")
		else:
			self.state = ChildState.EXITED_NONZERO
			logger.warning("Child process exited with code: %d", returncode)

	def _record_spawn_failure(self, kind: SpawnError, message: str, error: OSError) -> None:
		self.state = ChildState.FAILED_TO_SPAWN
		self.spawn_error = kind
		self.spawn_error_message = message
		logger.error("%s (%s)", message, error.strerror or error)
