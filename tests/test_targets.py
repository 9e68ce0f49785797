"""Tests for workspace target resolution."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from gatekeep import targets
from gatekeep.errors import CloneError, ValidationError
from gatekeep.process import CommandResult
from gatekeep.state import SetupState, Target

REPO = "https://example.com/acme/app.git"


class FakeClone:
    """Stand-in for ``run_bounded`` that materializes a clone directory."""

    def __init__(self, *, ok: bool = True, subdirs=("services/api",)) -> None:
        self.ok = ok
        self.subdirs = subdirs
        self.calls = []

    def __call__(self, command, timeout, **kwargs):
        self.calls.append(list(command))
        destination = Path(command[-1])
        destination.mkdir(parents=True)
        (destination / "README.md").write_text("partial", encoding="utf-8")
        for subdir in self.subdirs:
            (destination / subdir).mkdir(parents=True)
        if self.ok:
            return CommandResult(command=command, returncode=0, output="")
        return CommandResult(command=command, returncode=128, output="fatal: repository not found\n")


def test_local_target_is_resolved(tmp_path: Path):
    project = tmp_path / "project"
    project.mkdir()
    state = SetupState()

    target = targets.select_target(tmp_path, targets.TargetRequest(path=str(project)), state)

    assert target.type == targets.TARGET_LOCAL
    assert target.workspace_root == str(project.resolve())
    assert state.target is target


def test_missing_local_target_fails(tmp_path: Path):
    with pytest.raises(ValidationError, match="does not exist"):
        targets.select_target(tmp_path, targets.TargetRequest(path=str(tmp_path / "nope")), SetupState())


def test_file_target_fails(tmp_path: Path):
    path = tmp_path / "file.txt"
    path.write_text("x", encoding="utf-8")
    with pytest.raises(ValidationError, match="not a directory"):
        targets.select_target(tmp_path, targets.TargetRequest(path=str(path)), SetupState())


def test_empty_request_reuses_stored_root(tmp_path: Path):
    state = SetupState(target=Target(type="local", path="/srv/app", workspace_root="/srv/app"))

    target = targets.select_target(tmp_path, targets.TargetRequest(), state)

    assert target.workspace_root == "/srv/app"
    with pytest.raises(ValidationError, match="target is required"):
        targets.select_target(tmp_path, targets.TargetRequest(), SetupState())


def test_remote_target_clones_once(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    fake = FakeClone()
    monkeypatch.setattr(targets, "run_bounded", fake)
    request = targets.TargetRequest(repo_url=REPO, ref="main", subdir="services/api")

    first = targets.select_target(tmp_path, request, SetupState())
    second = targets.select_target(tmp_path, request, SetupState())

    assert len(fake.calls) == 1
    assert fake.calls[0][:6] == ["git", "clone", "--depth", "1", "--branch", "main"]
    assert first.type == targets.TARGET_GIT
    assert first.workspace_root == second.workspace_root
    assert first.workspace_root.endswith(str(Path("services") / "api"))
    [entry] = targets.load_workspaces(tmp_path)
    assert entry.repo_url == REPO
    assert entry.path == first.workspace_root


def test_failed_clone_leaves_no_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(targets, "run_bounded", FakeClone(ok=False))
    request = targets.TargetRequest(repo_url=REPO)

    with pytest.raises(CloneError, match="repository not found"):
        targets.select_target(tmp_path, request, SetupState())

    workspace_id = targets.sanitize_workspace_id(REPO)
    assert not targets.clone_path_for(tmp_path, workspace_id).exists()
    assert not targets.workspaces_path(tmp_path).exists()


def test_subdir_must_stay_inside_clone(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(targets, "run_bounded", FakeClone())

    with pytest.raises(ValidationError, match="escapes"):
        targets.select_target(tmp_path, targets.TargetRequest(repo_url=REPO, subdir="../.."), SetupState())
    with pytest.raises(ValidationError, match="not found"):
        targets.select_target(tmp_path, targets.TargetRequest(repo_url=REPO, subdir="missing"), SetupState())


def test_sanitize_workspace_id():
    workspace_id = targets.sanitize_workspace_id("git@host:org/repo.git", "v1.2", "a/b")

    assert workspace_id == "git_host_org_repo.git_v1.2_a_b"
    assert "/" not in workspace_id


def test_record_workspace_keeps_first_seen(tmp_path: Path):
    entry = targets.WorkspaceEntry(workspace_id="w1", repo_url=REPO, path="/tmp/w1")
    targets.record_workspace(tmp_path, entry, now="2024-01-01T00:00:00Z")
    targets.record_workspace(
        tmp_path,
        targets.WorkspaceEntry(workspace_id="w1", repo_url=REPO, path="/tmp/w1", ref="dev"),
        now="2024-02-01T00:00:00Z",
    )

    [raw] = json.loads(targets.workspaces_path(tmp_path).read_text(encoding="utf-8"))
    assert raw["addedAtUtc"] == "2024-01-01T00:00:00Z"
    assert raw["updatedAtUtc"] == "2024-02-01T00:00:00Z"
    assert raw["ref"] == "dev"
