"""
Tests for ExternalSession and the worker it drives.

The session tests launch the real worker process; routines are tiny
scripts written to tmp_path so no deep-learning stack is needed.
"""

import os
import textwrap
import threading
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from plpkit.data.covariates import TemporalFeatures
from plpkit.exceptions import ExternalSessionFailure
from plpkit.external.adapter import ExternalTrainerAdapter
from plpkit.external.session import ExternalSession
from plpkit.external.worker import Worker
from plpkit.types import HyperparameterConfiguration


def write_routine(directory, name, body):
    path = directory / name
    path.write_text(textwrap.dedent(body))
    return path


@pytest.fixture
def session():
    session = ExternalSession(timeout=120)
    session.start()
    yield session
    session.close()


class TestWorker:
    """Tests for the in-process request handler."""

    def test_set_exec_and_dump(self, tmp_path):
        routine = write_routine(tmp_path, "double.py", """
            import numpy as np
            doubled = np.asarray(values) * factor
        """)
        np.save(tmp_path / "values.npy", np.array([1.0, 2.0]))
        worker = Worker()

        worker.handle({"op": "set", "values": {"factor": 3}})
        worker.handle({"op": "load", "name": "values", "path": str(tmp_path / "values.npy")})
        worker.handle({"op": "exec", "path": str(routine)})
        reply = worker.handle({"op": "dump", "name": "doubled", "path": str(tmp_path / "out.npy")})

        assert reply == {"shape": [2]}
        np.testing.assert_allclose(np.load(tmp_path / "out.npy"), [3.0, 6.0])

    def test_routine_runs_under_routine_name(self, tmp_path):
        routine = write_routine(tmp_path, "name.py", """
            ran_as = __name__
        """)
        worker = Worker()

        worker.handle({"op": "exec", "path": str(routine)})

        assert worker.namespace["ran_as"] == "__routine__"

    def test_dump_undefined_raises(self, tmp_path):
        with pytest.raises(KeyError):
            Worker().handle({"op": "dump", "name": "missing", "path": str(tmp_path / "x.npy")})

    def test_unknown_op_raises(self):
        with pytest.raises(ValueError):
            Worker().handle({"op": "reboot"})


class TestExternalSession:
    """Tests against a live worker process."""

    def test_ping_reports_child_pid(self, session):
        pid = session.ping()

        assert isinstance(pid, int)
        assert pid != os.getpid()
        assert session.is_running

    def test_round_trip(self, session, tmp_path):
        routine = write_routine(tmp_path, "scale.py", """
            scaled = matrix * factor
        """)
        matrix = np.arange(6, dtype=np.float64).reshape(2, 3)

        session.push_array("matrix", matrix)
        session.set_values(factor=2.5)
        session.execute(routine)

        np.testing.assert_allclose(session.fetch_array("scaled"), matrix * 2.5)

    def test_values_are_overwritten_between_calls(self, session, tmp_path):
        routine = write_routine(tmp_path, "inc.py", """
            result = x + 1
        """)

        session.set_values(x=1)
        session.execute(routine)
        first = session.fetch_array("result")
        session.set_values(x=5)
        session.execute(routine)
        second = session.fetch_array("result")

        assert int(first) == 2
        assert int(second) == 6

    def test_routine_error_raises_and_session_survives(self, session, tmp_path):
        broken = write_routine(tmp_path, "broken.py", """
            raise RuntimeError("boom")
        """)

        with pytest.raises(ExternalSessionFailure, match="boom"):
            session.execute(broken)

        assert session.ping() > 0

    def test_routine_prints_do_not_corrupt_replies(self, session, tmp_path):
        noisy = write_routine(tmp_path, "noisy.py", """
            print("hello from the routine")
            answer = 42
        """)

        session.execute(noisy)

        assert int(session.fetch_array("answer")) == 42

    def test_fetch_undefined_raises(self, session):
        with pytest.raises(ExternalSessionFailure):
            session.fetch_array("never_defined")

    def test_missing_routine_raises(self, session, tmp_path):
        with pytest.raises(FileNotFoundError):
            session.execute(tmp_path / "absent.py")

    def test_non_json_values_rejected(self, session):
        with pytest.raises(ExternalSessionFailure):
            session.set_values(matrix=np.zeros(3))

    def test_timeout_raises_and_stops_session(self, tmp_path):
        slow = write_routine(tmp_path, "slow.py", """
            import time
            time.sleep(30)
        """)
        session = ExternalSession(timeout=120)
        session.start()
        session.timeout = 0.5

        try:
            with pytest.raises(ExternalSessionFailure, match="did not answer"):
                session.execute(slow)
            assert not session.is_running
        finally:
            session.close()

    def test_crash_raises(self, tmp_path):
        crash = write_routine(tmp_path, "crash.py", """
            import os
            os._exit(3)
        """)
        session = ExternalSession(timeout=120)
        session.start()

        try:
            with pytest.raises(ExternalSessionFailure, match="exited"):
                session.execute(crash)
        finally:
            session.close()

    def test_request_when_not_running_raises(self):
        with pytest.raises(ExternalSessionFailure):
            ExternalSession(timeout=5).ping()

    def test_bad_interpreter_raises(self):
        session = ExternalSession(python_executable="/nonexistent/python", timeout=5)

        with pytest.raises(ExternalSessionFailure):
            session.start()

    def test_acquire_starts_and_closes(self):
        session = ExternalSession(timeout=120)

        with session.acquire():
            assert session.is_running
            work_dir = session.work_dir

        assert not session.is_running
        assert not work_dir.exists()

    def test_acquire_leaves_running_session_open(self, session):
        with session.acquire():
            pass

        assert session.is_running

    def test_context_manager(self):
        with ExternalSession(timeout=120) as session:
            assert session.ping() > 0

        assert not session.is_running


class TestAdapterWithLiveSession:
    """End-to-end adapter runs over a real worker."""

    ROUTINE = """
        from pathlib import Path
        import numpy as np

        if train:
            prediction = np.column_stack([
                population,
                np.where(population[:, 1] > 0, 0.1, 0.9),
            ])
        else:
            Path(model_output, f"model_{hidden_size}.bin").write_bytes(b"weights")
    """

    @pytest.fixture
    def data(self):
        population = pd.DataFrame({
            "rowId": [5, 6, 7, 8],
            "outcomeCount": [1, 0, 0, 1],
            "indexes": [1, 1, 2, 2],
        })
        features = TemporalFeatures(
            tensor=np.ones((4, 2, 2), dtype=np.float32),
            row_ids=population["rowId"].to_numpy(),
            covariate_map={1: 0, 2: 1},
            time_ids=np.array([1, 2]),
        )
        return population, features

    def test_evaluation_inverts_polarity(self, session, tmp_path, data):
        routine = write_routine(tmp_path, "train.py", self.ROUTINE)
        adapter = ExternalTrainerAdapter(session, tmp_path / "models", train_routine=routine)
        adapter.push_data(*data)

        result = adapter.evaluate(HyperparameterConfiguration(
            {"hidden_size": 4, "epochs": 1, "seed": 0, "class_weight": 0, "type": "RNN"}
        ))

        np.testing.assert_allclose(result.predictions["value"], [0.9, 0.1, 0.1, 0.9])
        assert result.performance == pytest.approx(1.0)

    def test_second_final_run_replaces_first(self, session, tmp_path, data):
        routine = write_routine(tmp_path, "train.py", self.ROUTINE)
        artifact_dir = tmp_path / "python_models"
        adapter = ExternalTrainerAdapter(session, artifact_dir, train_routine=routine)
        adapter.push_data(*data)

        for hidden_size in (4, 8):
            adapter.evaluate(HyperparameterConfiguration(
                {"hidden_size": hidden_size, "epochs": 1, "seed": None,
                 "class_weight": -1, "type": "GRU"},
                is_final=True,
            ))

        assert [p.name for p in artifact_dir.iterdir()] == ["model_8.bin"]


class GatedSession:
    """Dict-backed session whose routine is a Python callable."""

    def __init__(self, routine):
        self.routine = routine
        self.namespace = {}

    def set_values(self, **values):
        self.namespace.update(values)

    def push_array(self, name, array):
        self.namespace[name] = np.array(array)

    def execute(self, routine):
        self.routine(self.namespace)

    def fetch_array(self, name):
        return self.namespace[name]


class TestMutualExclusion:
    """Only one training request may own a session or an artifact directory at a time."""

    def test_second_thread_waits_for_acquire(self, session):
        held = threading.Event()
        release = threading.Event()
        entered = threading.Event()

        def owner():
            with session.acquire():
                held.set()
                release.wait(timeout=30)

        def contender():
            with session.acquire():
                session.ping()
                entered.set()

        first = threading.Thread(target=owner)
        first.start()
        assert held.wait(timeout=30)

        second = threading.Thread(target=contender)
        second.start()
        assert not entered.wait(0.5)

        release.set()
        first.join(timeout=30)
        second.join(timeout=30)
        assert entered.is_set()
        assert session.is_running

    def test_final_runs_into_same_directory_are_serialized(self, tmp_path, data_for_lock):
        written = threading.Event()
        release = threading.Event()
        observed = {}

        def slow_writer(ns):
            output = Path(ns["model_output"])
            (output / "first.bin").write_bytes(b"first")
            written.set()
            release.wait(timeout=30)
            observed["first_survived"] = (output / "first.bin").exists()

        def fast_writer(ns):
            (Path(ns["model_output"]) / "second.bin").write_bytes(b"second")

        configuration = HyperparameterConfiguration(
            {"hidden_size": 4, "epochs": 1, "seed": 0, "class_weight": 0, "type": "RNN"},
            is_final=True,
        )
        artifact_dir = tmp_path / "python_models"
        (tmp_path / "other").mkdir()
        first = ExternalTrainerAdapter(GatedSession(slow_writer), artifact_dir)
        second = ExternalTrainerAdapter(
            GatedSession(fast_writer), tmp_path / "other" / ".." / "python_models"
        )
        first.push_data(*data_for_lock)
        second.push_data(*data_for_lock)

        first_thread = threading.Thread(target=first.evaluate, args=(configuration,))
        first_thread.start()
        assert written.wait(timeout=30)

        second_thread = threading.Thread(target=second.evaluate, args=(configuration,))
        second_thread.start()
        second_thread.join(timeout=0.5)
        assert second_thread.is_alive()
        assert sorted(p.name for p in artifact_dir.iterdir()) == ["first.bin"]

        release.set()
        first_thread.join(timeout=30)
        second_thread.join(timeout=30)

        assert observed["first_survived"]
        assert sorted(p.name for p in artifact_dir.iterdir()) == ["second.bin"]

    @pytest.fixture
    def data_for_lock(self):
        population = pd.DataFrame({
            "rowId": [1, 2, 3],
            "outcomeCount": [0, 1, 0],
            "indexes": [1, 2, 1],
        })
        features = TemporalFeatures(
            tensor=np.zeros((3, 1, 2), dtype=np.float32),
            row_ids=population["rowId"].to_numpy(),
            covariate_map={1: 0, 2: 1},
            time_ids=np.array([1]),
        )
        return population, features
