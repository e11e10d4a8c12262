from __future__ import annotations

import logging
import subprocess
import threading
from pathlib import Path
from typing import BinaryIO, Callable, List, Mapping, Optional, Protocol, Sequence

from .errors import IOFailure, LaunchFailure


LOGGER = logging.getLogger("corb_admin.launcher")

CHUNK_SIZE = 4096

OutputListener = Callable[[bytes], None]


class ProcessHandle(Protocol):
    """Capability the sequencer needs from a running phase."""

    def wait(self) -> int:
        """Block until the phase exits and return its exit code."""

    def terminate(self) -> None:
        """Ask the process to stop; does not wait for it."""


class Launcher(Protocol):
    def launch(
        self,
        executable: str,
        args: Sequence[str],
        cwd: Path,
        env: Mapping[str, str],
        log_path: Path,
    ) -> ProcessHandle:
        ...


class SubprocessHandle:
    """
    A spawned phase whose combined stdout/stderr is pumped into its log file.

    Bytes are appended and flushed in arrival order on a background thread;
    :meth:`wait` returns only after the pump has drained the pipe.
    """

    def __init__(
        self,
        process: subprocess.Popen,
        log_file: BinaryIO,
        listener: Optional[OutputListener] = None,
    ) -> None:
        self._process = process
        self._log_file = log_file
        self._listener = listener
        self._pump = threading.Thread(
            target=self._pump_output,
            name=f"pump-{process.pid}",
            daemon=True,
        )
        self._pump.start()

    @property
    def pid(self) -> int:
        return self._process.pid

    def poll(self) -> Optional[int]:
        return self._process.poll()

    def wait(self) -> int:
        return_code = self._process.wait()
        self._pump.join()
        return return_code

    def terminate(self) -> None:
        if self._process.poll() is not None:
            return
        LOGGER.info("Sending terminate to pid %s", self._process.pid)
        try:
            self._process.terminate()
        except ProcessLookupError:
            pass

    def _pump_output(self) -> None:
        stream = self._process.stdout
        try:
            if stream is None:
                return
            for chunk in iter(lambda: stream.read1(CHUNK_SIZE), b""):
                self._log_file.write(chunk)
                self._log_file.flush()
                if self._listener is not None:
                    self._listener(chunk)
        finally:
            if stream is not None:
                stream.close()
            self._log_file.close()


class SubprocessLauncher:
    """Spawn the external tool with ``subprocess.Popen``."""

    def __init__(self, listener: Optional[OutputListener] = None) -> None:
        self._listener = listener

    def launch(
        self,
        executable: str,
        args: Sequence[str],
        cwd: Path,
        env: Mapping[str, str],
        log_path: Path,
    ) -> SubprocessHandle:
        command_list: List[str] = [executable, *args]
        try:
            log_file = Path(log_path).open("ab")
        except OSError as exc:
            raise IOFailure(f"cannot open log file {log_path}: {exc}") from exc

        log_file.write(f"$ {' '.join(command_list)}\n".encode("utf-8"))
        log_file.flush()
        try:
            process = subprocess.Popen(
                command_list,
                cwd=cwd,
                env=dict(env),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                shell=False,
            )
        except FileNotFoundError as exc:
            self._record_failure(log_file, "missing-executable", exc)
            raise LaunchFailure(executable, "missing-executable") from exc
        except PermissionError as exc:
            self._record_failure(log_file, "permission-denied", exc)
            raise LaunchFailure(executable, "permission-denied") from exc
        except OSError as exc:
            self._record_failure(log_file, "os-error", exc)
            raise LaunchFailure(executable, "os-error") from exc

        LOGGER.debug("Spawned pid %s writing to %s", process.pid, log_path)
        return SubprocessHandle(process, log_file, self._listener)

    @staticmethod
    def _record_failure(log_file: BinaryIO, reason: str, exc: OSError) -> None:
        try:
            log_file.write(f"[{reason}] command failed to start: {exc}\n".encode("utf-8"))
        finally:
            log_file.close()
