"""
Supervised session with an out-of-process Python interpreter.

Design Decisions:

1. One child process per session:
   - Launched as ``python -m plpkit.external.worker``
   - Stateful: values pushed by one call stay visible to the next, and each
     call overwrites the previous values in place

2. Explicit ownership:
   - A re-entrant lock guards every round trip; acquire() holds it for a
     whole training request so two fits can never interleave their state

3. Bounded blocking:
   - Each request waits at most `timeout` seconds for the reply
   - Timeout, crash, closed pipe or an error reply raise
     ExternalSessionFailure. There is no reconnect and no retry.

4. Large data by file:
   - Arrays are written as .npy files in a private work directory and only
     their paths cross the pipe
"""

import json
import logging
import os
import queue
import shutil
import subprocess
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Union

import numpy as np

import plpkit
from plpkit.config import get_config
from plpkit.exceptions import ExternalSessionFailure

logger = logging.getLogger(__name__)

WORKER_MODULE = "plpkit.external.worker"

_DEFAULT = object()


def _pump_replies(stream, replies: "queue.Queue[Optional[str]]"):
    """Forward worker stdout lines; None marks end of stream."""
    for line in stream:
        replies.put(line)
    replies.put(None)


def _pump_log(stream):
    """Forward worker stderr to the log."""
    for line in stream:
        line = line.rstrip()
        if line:
            logger.info(f"[external] {line}")


class ExternalSession:
    """
    A synchronous, exclusive request/response channel to a child interpreter.

    Example:
        >>> session = ExternalSession(timeout=600)
        >>> with session.acquire():
        ...     session.push_array("population", population_matrix)
        ...     session.set_values(epochs=20, train=True)
        ...     session.execute("routines/deep_torch.py")
        ...     prediction = session.fetch_array("prediction")
    """

    def __init__(
        self,
        python_executable: Optional[str] = None,
        timeout: Any = _DEFAULT,
    ):
        """
        Args:
            python_executable: Interpreter to launch (default: config.python_executable)
            timeout: Seconds per round trip; None waits forever
                (default: config.session_timeout)
        """
        config = get_config()
        self.python_executable = python_executable or config.python_executable
        self.timeout = config.session_timeout if timeout is _DEFAULT else timeout

        self._lock = threading.RLock()
        self._process: Optional[subprocess.Popen] = None
        self._replies: "queue.Queue[Optional[str]]" = queue.Queue()
        self._work_dir: Optional[Path] = None
        self._counter = 0

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.poll() is None

    @property
    def work_dir(self) -> Optional[Path]:
        return self._work_dir

    def _environment(self) -> dict:
        env = os.environ.copy()
        package_root = str(Path(plpkit.__file__).resolve().parent.parent)
        existing = env.get("PYTHONPATH")
        env["PYTHONPATH"] = package_root + (os.pathsep + existing if existing else "")
        return env

    def start(self) -> "ExternalSession":
        """Launch the child interpreter and check it answers."""
        with self._lock:
            if self.is_running:
                return self

            self._work_dir = Path(tempfile.mkdtemp(prefix="plpkit-session-"))
            self._replies = queue.Queue()

            try:
                self._process = subprocess.Popen(
                    [self.python_executable, "-m", WORKER_MODULE],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    text=True,
                    bufsize=1,
                    env=self._environment(),
                )
            except OSError as e:
                self._cleanup()
                raise ExternalSessionFailure(
                    f"Could not launch external interpreter {self.python_executable}: {e}"
                )

            threading.Thread(
                target=_pump_replies,
                args=(self._process.stdout, self._replies),
                daemon=True,
            ).start()
            threading.Thread(
                target=_pump_log,
                args=(self._process.stderr,),
                daemon=True,
            ).start()

            reply = self._request({"op": "ping"})
            logger.info(f"External session started (pid={reply.get('pid')})")
            return self

    def close(self):
        """Ask the child to exit, kill it if it does not, remove the work directory."""
        with self._lock:
            if self._process is None:
                return

            if self.is_running:
                try:
                    self._request({"op": "close"})
                    self._process.wait(timeout=10)
                except (ExternalSessionFailure, subprocess.TimeoutExpired):
                    logger.warning("External session did not exit cleanly - killing it")

            self._cleanup()
            logger.info("External session closed")

    def _cleanup(self):
        if self._process is not None:
            if self._process.poll() is None:
                self._process.kill()
                self._process.wait()
            for stream in (self._process.stdin, self._process.stdout, self._process.stderr):
                if stream is not None:
                    stream.close()
            self._process = None
        if self._work_dir is not None:
            shutil.rmtree(self._work_dir, ignore_errors=True)
            self._work_dir = None

    @contextmanager
    def acquire(self) -> Iterator["ExternalSession"]:
        """
        Hold the session exclusively for the duration of the block.

        Starts the child if it is not running and closes it again on exit
        only if it was started here.
        """
        with self._lock:
            started_here = not self.is_running
            if started_here:
                self.start()
            try:
                yield self
            finally:
                if started_here:
                    self.close()

    def __enter__(self) -> "ExternalSession":
        self._lock.acquire()
        try:
            return self.start()
        except BaseException:
            self._lock.release()
            raise

    def __exit__(self, exc_type, exc_val, exc_tb):
        try:
            self.close()
        finally:
            self._lock.release()

    def _request(self, payload: dict) -> dict:
        """One synchronous round trip."""
        with self._lock:
            if not self.is_running:
                raise ExternalSessionFailure("External session is not running")

            try:
                self._process.stdin.write(json.dumps(payload) + "\n")
                self._process.stdin.flush()
            except (BrokenPipeError, OSError) as e:
                self._cleanup()
                raise ExternalSessionFailure(f"Lost connection to external session: {e}")

            try:
                line = self._replies.get(timeout=self.timeout)
            except queue.Empty:
                self._cleanup()
                raise ExternalSessionFailure(
                    f"External session did not answer '{payload.get('op')}' "
                    f"within {self.timeout}s"
                )

            if line is None:
                code = self._process.wait() if self._process else None
                self._cleanup()
                raise ExternalSessionFailure(
                    f"External session exited during '{payload.get('op')}' (exit code {code})"
                )

            try:
                reply = json.loads(line)
            except json.JSONDecodeError:
                raise ExternalSessionFailure(f"Malformed reply from external session: {line!r}")

            if not isinstance(reply, dict) or "ok" not in reply:
                raise ExternalSessionFailure(f"Malformed reply from external session: {line!r}")

            if not reply["ok"]:
                logger.error(reply.get("traceback", ""))
                raise ExternalSessionFailure(
                    f"External '{payload.get('op')}' failed: {reply.get('error')}"
                )

            return reply

    def _scratch_path(self, name: str) -> Path:
        self._counter += 1
        return self._work_dir / f"{self._counter:04d}_{name}.npy"

    def ping(self) -> int:
        """Process id of the child."""
        return self._request({"op": "ping"})["pid"]

    def set_values(self, **values: Any):
        """Set scalar values in the child namespace, overwriting previous ones."""
        try:
            json.dumps(values)
        except TypeError as e:
            raise ExternalSessionFailure(f"Session values must be JSON scalars: {e}")
        self._request({"op": "set", "values": values})

    def push_array(self, name: str, array: np.ndarray):
        """Hand an array to the child as namespace[name]."""
        with self._lock:
            if not self.is_running:
                raise ExternalSessionFailure("External session is not running")
            path = self._scratch_path(name)
            np.save(path, np.ascontiguousarray(array), allow_pickle=False)
            self._request({"op": "load", "name": name, "path": str(path)})
            path.unlink()

    def execute(self, routine: Union[str, Path]):
        """Run a routine file with the child namespace as its globals; blocks until it returns."""
        routine = Path(routine).resolve()
        if not routine.exists():
            raise FileNotFoundError(f"Routine not found: {routine}")
        logger.info(f"Executing external routine {routine.name}")
        self._request({"op": "exec", "path": str(routine)})

    def fetch_array(self, name: str) -> np.ndarray:
        """Read namespace[name] back from the child."""
        with self._lock:
            if not self.is_running:
                raise ExternalSessionFailure("External session is not running")
            path = self._scratch_path(name)
            self._request({"op": "dump", "name": name, "path": str(path)})
            try:
                array = np.load(path, allow_pickle=False)
            except (OSError, ValueError) as e:
                raise ExternalSessionFailure(f"Could not read '{name}' from external session: {e}")
            path.unlink()
            return array
