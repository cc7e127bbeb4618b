"""MCP server communication via stdio subprocess transport."""

from __future__ import annotations

import itertools
import json
import logging
import os
import signal
import subprocess
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from mcpclient.core.errors import (
    McpClientError,
    ProcessSpawnError,
    RemoteError,
    RequestTimeoutError,
    TransportClosedError,
)

logger = logging.getLogger(__name__)

JSONRPC_VERSION = "2.0"
METHOD_NOT_FOUND = -32601
READ_CHUNK_SIZE = 65536

# Process groups let close() take down servers launched through wrappers (npx, sh)
_USE_PROCESS_GROUP = os.name == "posix"


class MessageFramer:
    """
    Newline-delimited JSON framing.

    ``feed()`` accepts raw bytes as they arrive and returns every complete
    message; an incomplete trailing line stays buffered until its newline
    shows up. Lines that are not JSON objects (banners, stray log output) are
    logged and dropped.
    """

    def __init__(self, source: str = "server"):
        self.source = source
        self._buffer = bytearray()

    def feed(self, data: bytes) -> List[Dict[str, Any]]:
        self._buffer.extend(data)
        messages: List[Dict[str, Any]] = []
        while True:
            newline = self._buffer.find(b"\n")
            if newline < 0:
                break
            line = bytes(self._buffer[:newline])
            del self._buffer[: newline + 1]
            message = self.decode_line(line)
            if message is not None:
                messages.append(message)
        return messages

    def flush(self) -> None:
        """Drop an unterminated trailing line (called at end of stream)."""
        if self._buffer.strip():
            logger.warning(
                "Discarding %d bytes of unterminated output from %s",
                len(self._buffer), self.source,
            )
        self._buffer.clear()

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def decode_line(self, line: bytes) -> Optional[Dict[str, Any]]:
        text = line.decode("utf-8", errors="replace").strip()
        if not text:
            return None
        try:
            message = json.loads(text)
        except json.JSONDecodeError:
            logger.warning("Ignoring non-JSON line from %s: %.200s", self.source, text)
            return None
        if not isinstance(message, dict):
            logger.warning("Ignoring non-object JSON from %s: %.200s", self.source, text)
            return None
        return message

    @staticmethod
    def encode(message: Dict[str, Any]) -> bytes:
        return (json.dumps(message, ensure_ascii=False) + "\n").encode("utf-8")


@dataclass
class PendingCall:
    """A request waiting for its response."""

    request_id: int
    method: str
    deadline: float
    event: threading.Event = field(default_factory=threading.Event)
    response: Optional[Dict[str, Any]] = None
    error: Optional[McpClientError] = None

    def resolve(self, response: Dict[str, Any]) -> None:
        self.response = response
        self.event.set()

    def fail(self, error: McpClientError) -> None:
        self.error = error
        self.event.set()


class StdioTransport:
    """
    Communicate with an MCP server over stdin/stdout (JSON-RPC).

    A background reader thread drains the server's stdout and hands each
    response to the caller waiting on its id; a second thread forwards the
    server's stderr to the ``mcpclient.server.<name>`` logger. Callers block
    on their own pending call, never on the reader.
    """

    def __init__(
        self,
        command: str,
        args: Optional[List[str]] = None,
        env: Optional[Dict[str, str]] = None,
        name: Optional[str] = None,
        request_timeout: float = 30.0,
        shutdown_grace: float = 5.0,
        cwd: Optional[str] = None,
        on_close: Optional[Callable[[str], None]] = None,
    ):
        self.command = command
        self.args = list(args or [])
        self.env = dict(env or {})
        self.name = name or os.path.basename(command) or "server"
        self.request_timeout = request_timeout
        self.shutdown_grace = shutdown_grace
        self.cwd = cwd
        self.on_close = on_close

        self._process: Optional[subprocess.Popen] = None
        self._ids = itertools.count(1)
        self._pending: Dict[int, PendingCall] = {}
        self._lock = threading.Lock()  # pending table and id counter
        self._write_lock = threading.Lock()
        self._lifecycle_lock = threading.RLock()
        self._closed = threading.Event()
        self._close_notified = False
        self._reader: Optional[threading.Thread] = None
        self._stderr_pump: Optional[threading.Thread] = None
        self._server_log = logging.getLogger(f"mcpclient.server.{self.name}")

    # ── Lifecycle ─────────────────────────────────────────────────────────

    def start(self) -> subprocess.Popen:
        """Spawn the MCP server subprocess and its reader threads."""
        with self._lifecycle_lock:
            if self.is_running:
                return self._process  # already running

            argv = [self.command] + self.args
            merged_env = {**os.environ, **self.env}
            try:
                process = subprocess.Popen(
                    argv,
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    env=merged_env,
                    cwd=self.cwd,
                    start_new_session=_USE_PROCESS_GROUP,
                )
            except FileNotFoundError as exc:
                raise ProcessSpawnError(
                    f"MCP server command not found: {self.command}. "
                    "Check the path and that the runtime is installed."
                ) from exc
            except PermissionError as exc:
                raise ProcessSpawnError(
                    f"MCP server command is not executable: {self.command}"
                ) from exc
            except OSError as exc:
                raise ProcessSpawnError(f"Failed to launch MCP server '{self.command}': {exc}") from exc

            self._process = process
            self._closed.clear()
            self._close_notified = False
            logger.info("Started MCP server '%s' (pid %d): %s", self.name, process.pid, " ".join(argv))

            self._reader = threading.Thread(
                target=self._read_loop, args=(process,),
                name=f"mcp-reader-{self.name}", daemon=True,
            )
            self._stderr_pump = threading.Thread(
                target=self._pump_stderr, args=(process,),
                name=f"mcp-stderr-{self.name}", daemon=True,
            )
            self._reader.start()
            self._stderr_pump.start()
            return process

    def close(self) -> None:
        """
        Stop the server: close its stdin, terminate, and kill it if it is
        still alive after ``shutdown_grace`` seconds. Outstanding requests
        fail with ``TransportClosedError``. Safe to call more than once.
        """
        with self._lifecycle_lock:
            process = self._process
            if process is None:
                return
            self._process = None
            self._closed.set()

        logger.info("Stopping MCP server '%s' (pid %d)", self.name, process.pid)
        self._terminate(process)
        self._fail_pending("Transport closed")
        self._join_threads()
        self._close_pipes(process)
        self._mark_closed("closed by client")

    @property
    def is_running(self) -> bool:
        process = self._process
        return process is not None and process.poll() is None and not self._closed.is_set()

    @property
    def pid(self) -> Optional[int]:
        process = self._process
        return process.pid if process is not None else None

    @property
    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _terminate(self, process: subprocess.Popen) -> None:
        if process.stdin is not None:
            try:
                process.stdin.close()
            except OSError as exc:
                logger.debug("Closing stdin of '%s' failed: %s", self.name, exc)

        if process.poll() is None:
            self._signal(process, signal.SIGTERM)
            try:
                process.wait(timeout=self.shutdown_grace)
            except subprocess.TimeoutExpired:
                logger.warning(
                    "MCP server '%s' did not exit within %gs; killing it",
                    self.name, self.shutdown_grace,
                )

        # Kill whatever is left of the group, even after a clean exit
        self._signal(process, getattr(signal, "SIGKILL", signal.SIGTERM))
        process.wait()
        logger.debug("MCP server '%s' exited with code %s", self.name, process.returncode)

    def _signal(self, process: subprocess.Popen, sig: int) -> None:
        if _USE_PROCESS_GROUP:
            try:
                os.killpg(process.pid, sig)
            except (ProcessLookupError, PermissionError) as exc:
                logger.debug("Process group of '%s' already gone: %s", self.name, exc)
        elif process.poll() is None:
            if sig == signal.SIGTERM:
                process.terminate()
            else:
                process.kill()

    def _join_threads(self) -> None:
        current = threading.current_thread()
        for thread in (self._reader, self._stderr_pump):
            if thread is not None and thread is not current:
                thread.join(timeout=self.shutdown_grace)
                if thread.is_alive():
                    logger.warning("Thread %s did not stop; leaving it as daemon", thread.name)

    def _close_pipes(self, process: subprocess.Popen) -> None:
        current = threading.current_thread()
        for pipe, thread in ((process.stdout, self._reader), (process.stderr, self._stderr_pump)):
            if pipe is None:
                continue
            # A reader still blocked in read() holds the buffer lock
            if thread is not None and thread is not current and thread.is_alive():
                continue
            pipe.close()

    def _mark_closed(self, reason: str) -> None:
        self._closed.set()
        with self._lock:
            if self._close_notified:
                return
            self._close_notified = True
        if self.on_close is not None:
            self.on_close(reason)

    def _fail_pending(self, reason: str) -> None:
        with self._lock:
            pending = list(self._pending.values())
            self._pending.clear()
        for call in pending:
            call.fail(TransportClosedError(f"{reason} before '{call.method}' (id={call.request_id}) completed"))

    # ── Reader threads ────────────────────────────────────────────────────

    def _read_loop(self, process: subprocess.Popen) -> None:
        framer = MessageFramer(source=f"MCP server '{self.name}'")
        stdout = process.stdout
        try:
            while True:
                chunk = stdout.read1(READ_CHUNK_SIZE)
                if not chunk:
                    break
                for message in framer.feed(chunk):
                    self._dispatch(message)
        except (OSError, ValueError) as exc:
            logger.debug("Reader for '%s' stopped: %s", self.name, exc)
        finally:
            framer.flush()
            # close() reports its own shutdown
            if not self._closed.is_set():
                code = process.poll()
                reason = f"MCP server '{self.name}' closed its output"
                if code is not None:
                    reason += f" (exit code {code})"
                logger.warning(reason)
                self._fail_pending(reason)
                self._mark_closed(reason)

    def _pump_stderr(self, process: subprocess.Popen) -> None:
        try:
            for raw in iter(process.stderr.readline, b""):
                line = raw.decode("utf-8", errors="replace").rstrip()
                if line:
                    self._server_log.info(line)
        except (OSError, ValueError) as exc:
            logger.debug("stderr pump for '%s' stopped: %s", self.name, exc)

    def _dispatch(self, message: Dict[str, Any]) -> None:
        if "method" in message:
            if "id" in message:
                self._answer_server_request(message)
            else:
                logger.debug("Notification from '%s': %s", self.name, message.get("method"))
            return

        request_id = message.get("id")
        if isinstance(request_id, str) and request_id.isdigit():
            request_id = int(request_id)
        with self._lock:
            call = self._pending.pop(request_id, None) if isinstance(request_id, int) else None
        if call is None:
            logger.debug("Discarding unmatched response from '%s' (id=%r)", self.name, message.get("id"))
            return
        call.resolve(message)

    def _answer_server_request(self, message: Dict[str, Any]) -> None:
        method = message.get("method")
        reply: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": message.get("id")}
        if method == "ping":
            reply["result"] = {}
        else:
            logger.debug("Rejecting unsupported server request '%s'", method)
            reply["error"] = {"code": METHOD_NOT_FOUND, "message": f"Method not found: {method}"}
        try:
            self._write(reply)
        except TransportClosedError as exc:
            logger.debug("Could not answer server request '%s': %s", method, exc)

    # ── JSON-RPC ──────────────────────────────────────────────────────────

    def _write(self, message: Dict[str, Any]) -> None:
        data = MessageFramer.encode(message)
        with self._write_lock:
            process = self._process
            if process is None or process.stdin is None or self._closed.is_set():
                raise TransportClosedError(f"MCP server '{self.name}' is not running")
            try:
                process.stdin.write(data)
                process.stdin.flush()
            except (OSError, ValueError) as exc:
                raise TransportClosedError(f"MCP transport error: {exc}") from exc

    def send_request(
        self,
        method: str,
        params: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> Dict[str, Any]:
        """
        Send a JSON-RPC request and wait for its result.

        Raises:
            RequestTimeoutError: no response within ``timeout`` seconds.
            TransportClosedError: the server exited or the pipe broke.
            RemoteError: the server answered with a JSON-RPC error.
        """
        if not self.is_running:
            raise TransportClosedError(f"MCP server '{self.name}' is not running")
        timeout = self.request_timeout if timeout is None else timeout

        with self._lock:
            request_id = next(self._ids)
            call = PendingCall(request_id, method, time.monotonic() + timeout)
            self._pending[request_id] = call

        request: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "id": request_id, "method": method}
        if params is not None:
            request["params"] = params

        try:
            self._write(request)
        except TransportClosedError:
            with self._lock:
                self._pending.pop(request_id, None)
            raise

        if not call.event.wait(timeout):
            with self._lock:
                self._pending.pop(request_id, None)
            if not call.event.is_set():
                logger.warning("Request '%s' (id=%d) to '%s' timed out", method, request_id, self.name)
                raise RequestTimeoutError(method, request_id, timeout)

        if call.error is not None:
            raise call.error

        response = call.response or {}
        if "error" in response:
            err = response["error"] if isinstance(response["error"], dict) else {"message": str(response["error"])}
            raise RemoteError(err.get("code"), err.get("message", "unknown error"), err.get("data"))

        result = response.get("result")
        return result if result is not None else {}

    def send_notification(self, method: str, params: Optional[Dict[str, Any]] = None) -> None:
        """Send a JSON-RPC notification (no response expected)."""
        message: Dict[str, Any] = {"jsonrpc": JSONRPC_VERSION, "method": method}
        if params is not None:
            message["params"] = params
        self._write(message)
