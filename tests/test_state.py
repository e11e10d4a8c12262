import threading

from corb_admin.state import RunState, RunStateTracker, RunStatus


def test_finish_moves_owned_running_entry():
    tracker = RunStateTracker()
    state = RunState(status=RunStatus.RUNNING, phase="dry")
    tracker.set("R1", state)

    assert tracker.finish("R1", state.attempt, RunStatus.COMPLETED) is True
    assert tracker.get("R1").status is RunStatus.COMPLETED
    assert tracker.get("R1").handle is None


def test_finish_does_not_resurrect_cancelled_run():
    tracker = RunStateTracker()
    state = RunState(status=RunStatus.RUNNING)
    tracker.set("R1", state.with_status(RunStatus.ERROR))

    assert tracker.finish("R1", state.attempt, RunStatus.COMPLETED) is False
    assert tracker.get("R1").status is RunStatus.ERROR


def test_finish_ignores_superseded_attempt():
    tracker = RunStateTracker()
    old = RunState(status=RunStatus.RUNNING)
    new = RunState(status=RunStatus.RUNNING)
    tracker.set("R1", new)

    assert tracker.finish("R1", old.attempt, RunStatus.ERROR) is False
    assert tracker.get("R1") is new


def test_finish_on_missing_entry_creates_nothing():
    tracker = RunStateTracker()
    assert tracker.finish("R1", 1, RunStatus.COMPLETED) is False
    assert "R1" not in tracker


def test_delete_returns_removed_entry():
    tracker = RunStateTracker()
    state = RunState(status=RunStatus.COMPLETED)
    tracker.set("R1", state)
    assert tracker.delete("R1") is state
    assert tracker.get("R1") is None
    assert tracker.delete("R1") is None


def test_distinct_runs_do_not_contend():
    tracker = RunStateTracker()
    acquired = threading.Event()

    def _other_run():
        with tracker.locked("R2"):
            acquired.set()

    with tracker.locked("R1"):
        worker = threading.Thread(target=_other_run)
        worker.start()
        assert acquired.wait(timeout=5)
    worker.join()


def test_terminal_statuses():
    assert RunStatus.COMPLETED.is_terminal
    assert RunStatus.ERROR.is_terminal
    assert not RunStatus.RUNNING.is_terminal
    assert not RunStatus.UNKNOWN.is_terminal


def test_delete_releases_lock():
    tracker = RunStateTracker()
    tracker.set("R1", RunState(status=RunStatus.COMPLETED))
    assert tracker.lock_count() == 1

    tracker.delete("R1")

    assert tracker.lock_count() == 0


def test_finish_on_missing_entry_allocates_no_lock():
    tracker = RunStateTracker()
    tracker.finish("R1", 1, RunStatus.ERROR)
    assert tracker.lock_count() == 0


def test_with_status_keeps_exit_code():
    state = RunState(status=RunStatus.RUNNING, phase="wet", exit_code=3)
    settled = state.with_status(RunStatus.ERROR)
    assert settled.exit_code == 3
    assert settled.attempt == state.attempt
