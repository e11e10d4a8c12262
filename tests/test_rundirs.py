from datetime import datetime, timezone
from pathlib import Path

import pytest

from corb_admin.errors import AccessDenied, InvalidRequest, IOFailure, NotFound
from corb_admin.rundirs import RunDirectoryManager


def test_ensure_run_directory_is_idempotent(tmp_path: Path):
    manager = RunDirectoryManager(tmp_path / "runs")
    path = manager.ensure_run_directory("p1", "DEV", "20240101120000")
    (path / "dry-output.log").write_text("keep me", encoding="utf-8")

    again = manager.ensure_run_directory("p1", "DEV", "20240101120000")

    assert again == path
    assert path == (tmp_path / "runs" / "p1" / "DEV" / "20240101120000").resolve()
    assert (path / "dry-output.log").read_text(encoding="utf-8") == "keep me"


def test_ensure_run_directory_fails_when_ancestor_is_file(tmp_path: Path):
    runs = tmp_path / "runs"
    (runs / "p1").mkdir(parents=True)
    (runs / "p1" / "DEV").write_text("not a directory", encoding="utf-8")
    with pytest.raises(IOFailure):
        RunDirectoryManager(runs).ensure_run_directory("p1", "DEV", "20240101120000")


@pytest.mark.parametrize("project", ["..", "../elsewhere"])
def test_coordinates_cannot_escape(tmp_path: Path, project: str):
    manager = RunDirectoryManager(tmp_path / "runs")
    with pytest.raises(AccessDenied):
        manager.run_path(project, "DEV", "20240101120000")


@pytest.mark.parametrize("environment", ["", ".", "a/b"])
def test_coordinates_must_be_plain_names(tmp_path: Path, environment: str):
    manager = RunDirectoryManager(tmp_path / "runs")
    with pytest.raises(InvalidRequest):
        manager.run_path("p1", environment, "20240101120000")


def test_artifact_traversal_is_denied(tmp_path: Path):
    manager = RunDirectoryManager(tmp_path / "runs")
    manager.ensure_run_directory("p1", "DEV", "R1")
    with pytest.raises(AccessDenied):
        manager.read_file("p1", "DEV", "R1", "../../etc/passwd")
    with pytest.raises(AccessDenied):
        manager.read_file("p1", "DEV", "R1", "/etc/passwd")


def test_read_and_list_files(tmp_path: Path):
    manager = RunDirectoryManager(tmp_path / "runs")
    run_dir = manager.ensure_run_directory("p1", "DEV", "R1")
    (run_dir / "dry-output.log").write_text("line\n", encoding="utf-8")
    (run_dir / "scripts").mkdir()
    (run_dir / "scripts" / "uris.xqy").write_text("()", encoding="utf-8")

    assert manager.list_files("p1", "DEV", "R1") == ["dry-output.log", "scripts/uris.xqy"]
    assert manager.read_file("p1", "DEV", "R1", "scripts/uris.xqy") == "()"
    with pytest.raises(NotFound):
        manager.read_file("p1", "DEV", "R1", "wet-output.log")
    with pytest.raises(NotFound):
        manager.list_files("p1", "DEV", "R2")


def test_delete_removes_empty_environment_directory(tmp_path: Path):
    manager = RunDirectoryManager(tmp_path / "runs")
    manager.ensure_run_directory("p1", "DEV", "R1")

    assert manager.delete("p1", "DEV", "R1") is True
    assert not (tmp_path / "runs" / "p1" / "DEV").exists()
    assert (tmp_path / "runs" / "p1").is_dir()
    assert manager.delete("p1", "DEV", "R1") is False


def test_delete_keeps_environment_with_other_runs(tmp_path: Path):
    manager = RunDirectoryManager(tmp_path / "runs")
    manager.ensure_run_directory("p1", "DEV", "R1")
    manager.ensure_run_directory("p1", "DEV", "R2")

    manager.delete("p1", "DEV", "R1")
    assert manager.list_run_ids("p1", "DEV") == ["R2"]


def test_list_run_ids_newest_first(tmp_path: Path):
    manager = RunDirectoryManager(tmp_path / "runs")
    for run_id in ("20240101000000", "20240301000000", "20240201000000"):
        manager.ensure_run_directory("p1", "DEV", run_id)
    assert manager.list_run_ids("p1", "DEV") == ["20240301000000", "20240201000000", "20240101000000"]
    assert manager.list_run_ids("p1", "PROD") == []


def test_allocate_run_id_avoids_collisions(tmp_path: Path):
    manager = RunDirectoryManager(tmp_path / "runs")
    now = datetime(2024, 5, 6, 7, 8, 9, tzinfo=timezone.utc)
    manager.ensure_run_directory("p1", "DEV", "20240506070809")

    taken = {"20240506070809-01"}
    run_id = manager.allocate_run_id("p1", "DEV", is_taken=taken.__contains__, now=now)

    assert run_id == "20240506070809-02"
    assert manager.allocate_run_id("p1", "TEST", is_taken=lambda _: False, now=now) == "20240506070809"
