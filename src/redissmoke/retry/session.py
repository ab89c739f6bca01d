"""Checkable sessions: single externally observable attempts polled by the controller."""

from __future__ import annotations

import codecs
import logging as py_logging
import subprocess
import threading
from collections.abc import Callable, Mapping, Sequence
from contextlib import suppress
from enum import Enum
from typing import Protocol

logger = py_logging.getLogger(__name__)

_TERMINATE_GRACE_SECONDS = 2.0
_READ_CHUNK = 4096


class SessionSpawnError(Exception):
    """The session could not be started at all. Never retried."""


class SessionState(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    KILLED = "killed"


class CheckableSession(Protocol):
    @property
    def exit_code(self) -> int | None: ...

    def observed_output(self) -> str: ...

    def is_terminal(self) -> bool: ...

    def terminate(self) -> None: ...


SessionFactory = Callable[[], CheckableSession]


class ProcessSession:
    """Subprocess whose merged stdout/stderr is collected by a reader thread."""

    def __init__(self, process: subprocess.Popen[bytes], command: Sequence[str]) -> None:
        self.command = tuple(command)
        self._process = process
        self._chunks: list[str] = []
        self._lock = threading.Lock()
        self._drained = threading.Event()
        self._state = SessionState.RUNNING
        self._closed = False
        self._reader = threading.Thread(target=self._read_output, daemon=True)
        self._reader.start()

    @classmethod
    def start(
        cls,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: str | None = None,
    ) -> ProcessSession:
        if not command:
            raise SessionSpawnError("Session command cannot be empty.")
        logger.debug("Spawning session command=%s", list(command))
        try:
            process = subprocess.Popen(
                list(command),
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                env=dict(env) if env is not None else None,
                cwd=cwd,
            )
        except OSError as exc:
            raise SessionSpawnError(f"Failed to start {command[0]}: {exc}") from exc
        return cls(process, command)

    def _read_output(self) -> None:
        stream = self._process.stdout
        decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        try:
            if stream is None:
                return
            while True:
                chunk = stream.read1(_READ_CHUNK)
                text = decoder.decode(chunk, final=not chunk)
                if text:
                    with self._lock:
                        self._chunks.append(text)
                if not chunk:
                    break
        except (OSError, ValueError):
            # Pipe closed underneath us by terminate().
            pass
        finally:
            self._drained.set()

    @property
    def state(self) -> SessionState:
        if self._state == SessionState.RUNNING and self.is_terminal():
            self._state = SessionState.COMPLETED
        return self._state

    @property
    def exit_code(self) -> int | None:
        if not self._drained.is_set():
            return None
        return self._process.poll()

    def observed_output(self) -> str:
        with self._lock:
            return "".join(self._chunks)

    def is_terminal(self) -> bool:
        if self._state == SessionState.KILLED:
            return True
        return self._drained.is_set() and self._process.poll() is not None

    def terminate(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self._process.poll() is None:
            self._state = SessionState.KILLED
            logger.debug("Terminating session command=%s", list(self.command))
            with suppress(OSError):
                self._process.terminate()
            try:
                self._process.wait(timeout=_TERMINATE_GRACE_SECONDS)
            except subprocess.TimeoutExpired:
                with suppress(OSError):
                    self._process.kill()
                with suppress(subprocess.TimeoutExpired):
                    self._process.wait(timeout=_TERMINATE_GRACE_SECONDS)
        elif self._state == SessionState.RUNNING:
            self._state = SessionState.COMPLETED
        self._reader.join(timeout=_TERMINATE_GRACE_SECONDS)
        # A grandchild may still hold the pipe open; leave it to the reader then.
        if self._process.stdout is not None and not self._reader.is_alive():
            with suppress(OSError):
                self._process.stdout.close()


class CallableSession:
    """Runs ``fn`` on a worker thread; its return value becomes the output."""

    def __init__(self, fn: Callable[[], str], *, name: str = "callable") -> None:
        self.name = name
        self._fn = fn
        self._output = ""
        self._exit_code: int | None = None
        self._lock = threading.Lock()
        self._done = threading.Event()
        self._state = SessionState.RUNNING
        self._worker = threading.Thread(target=self._run, daemon=True)

    @classmethod
    def start(cls, fn: Callable[[], str], *, name: str = "callable") -> CallableSession:
        session = cls(fn, name=name)
        try:
            session._worker.start()
        except RuntimeError as exc:
            raise SessionSpawnError(f"Failed to start {name}: {exc}") from exc
        return session

    def _run(self) -> None:
        try:
            output = self._fn()
            code = 0
        except Exception as exc:
            logger.debug("Callable session %s raised: %s", self.name, exc)
            output = str(exc) or type(exc).__name__
            code = 1
        with self._lock:
            if self._state == SessionState.RUNNING:
                self._output = output or ""
                self._exit_code = code
                self._state = SessionState.COMPLETED
        self._done.set()

    @property
    def state(self) -> SessionState:
        with self._lock:
            return self._state

    @property
    def exit_code(self) -> int | None:
        with self._lock:
            return self._exit_code

    def observed_output(self) -> str:
        with self._lock:
            return self._output

    def is_terminal(self) -> bool:
        with self._lock:
            return self._state != SessionState.RUNNING

    def wait(self, timeout: float | None = None) -> bool:
        return self._done.wait(timeout)

    def terminate(self) -> None:
        # Threads cannot be killed; a late result is discarded instead.
        with self._lock:
            if self._state == SessionState.RUNNING:
                self._state = SessionState.KILLED
