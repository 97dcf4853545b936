import fnmatch
import subprocess
from collections.abc import Sequence
from pathlib import Path

import pytest

from phasegate.errors import VersionControlError
from phasegate.vcs.base import StatusEntry, VersionControl, ensure_explicit_paths

UNSTAGED_CODES = {"modified": " M", "untracked": "??", "deleted": " D", "added": "A "}
STAGED_CODES = {"modified": "M ", "untracked": "A ", "deleted": "D ", "added": "A "}


class FakeRepository(VersionControl):
    """In-memory stand-in that tracks dirty paths, the index and commits."""

    def __init__(self, dirty: dict[str, str] | None = None) -> None:
        self.dirty: dict[str, str] = dict(dirty or {})
        self.index: set[str] = set()
        self.commits: list[tuple[str, str, list[str]]] = []
        self.calls: list[tuple[str, object]] = []
        self.status_filters: list[list[str] | None] = []
        self.diff_bodies: dict[str, str] = {}
        self.fail_commit = False
        self._head = "base000"

    def status(self, paths: Sequence[str] | None = None) -> list[StatusEntry]:
        self.status_filters.append(list(paths) if paths is not None else None)
        selected = self.dirty if paths is None else {
            path: kind for path, kind in self.dirty.items() if path in set(paths)
        }
        entries = []
        for path, kind in sorted(selected.items()):
            codes = STAGED_CODES if path in self.index else UNSTAGED_CODES
            entries.append(StatusEntry(code=codes[kind], path=path))
        return entries

    def diff(self, ref: str, paths: Sequence[str], exclude: Sequence[str] = ()) -> str:
        self.calls.append(("diff", (ref, list(paths), list(exclude))))
        chunks = []
        for path in paths:
            if any(fnmatch.fnmatch(path, pattern) for pattern in exclude):
                continue
            kind = self.dirty.get(path)
            if kind is None or (kind == "untracked" and path not in self.index):
                continue
            body = self.diff_bodies.get(path, f"+change in {path}")
            chunks.append(f"diff --git a/{path} b/{path}\n{body}\n")
        return "".join(chunks)

    def stage(self, paths: Sequence[str]) -> None:
        explicit = ensure_explicit_paths(paths)
        self.calls.append(("stage", list(explicit)))
        self.index.update(path for path in explicit if path in self.dirty)

    def unstage_all(self) -> None:
        self.calls.append(("unstage_all", None))
        self.index.clear()

    def staged_paths(self) -> list[str]:
        return sorted(self.index)

    def commit(self, message: str) -> str:
        if self.fail_commit:
            raise VersionControlError("nothing to commit", exit_code=1)
        committed = sorted(self.index)
        self._head = f"c{len(self.commits) + 1:07d}"
        self.commits.append((self._head, message, committed))
        for path in committed:
            self.dirty.pop(path, None)
        self.index.clear()
        return self._head

    def head(self) -> str:
        return self._head


STATUS_TEMPLATE = """# Project Status

### Current Active Initiative
Name: Demo Initiative
Path: `plans/demo`
Current Phase: {phase}
Status: Active

### Completed Initiatives
- None
"""

IMPLEMENTATION_TEMPLATE = """# Implementation Plan

Last Phase Commit Hash: {baseline}

### **Phase 1: Core Module**
**Deliverable:** A working core module.

### **Phase 2: Wiring**
Deliverable: CLI wiring.
"""


def write_initiative(
    root: Path,
    *,
    paths: Sequence[str],
    baseline: str = "base000",
    phase: int = 1,
) -> Path:
    initiative = root / "plans" / "demo"
    initiative.mkdir(parents=True, exist_ok=True)
    (root / "PROJECT_STATUS.md").write_text(STATUS_TEMPLATE.format(phase=phase), encoding="utf-8")
    (initiative / "implementation.md").write_text(
        IMPLEMENTATION_TEMPLATE.format(baseline=baseline), encoding="utf-8"
    )
    (initiative / "plan.md").write_text("# R&D Plan\n\nShip the demo.\n", encoding="utf-8")
    checklist = [f"# Phase {phase} Checklist", ""]
    checklist.extend(f"- [ ] Update `{path}`" for path in paths)
    (initiative / f"phase_{phase}_checklist.md").write_text(
        "\n".join(checklist) + "\n", encoding="utf-8"
    )
    return initiative


def run_git(args: list[str], cwd: Path) -> str:
    proc = subprocess.run(["git", *args], cwd=cwd, check=True, text=True, capture_output=True)
    return proc.stdout.strip()


def init_git_repo(repo_path: Path) -> str:
    run_git(["init"], cwd=repo_path)
    run_git(["config", "user.email", "test@example.com"], cwd=repo_path)
    run_git(["config", "user.name", "Test User"], cwd=repo_path)
    (repo_path / "src").mkdir(exist_ok=True)
    (repo_path / "src" / "app.py").write_text("print('v1')\n", encoding="utf-8")
    run_git(["add", "src/app.py"], cwd=repo_path)
    run_git(["commit", "-m", "seed"], cwd=repo_path)
    return run_git(["rev-parse", "HEAD"], cwd=repo_path)


@pytest.fixture
def fake_repo() -> FakeRepository:
    return FakeRepository()


@pytest.fixture
def git_initiative(tmp_path: Path) -> Path:
    """A real repository with a committed phase-1 plan and both planned files changed."""
    repo = tmp_path / "repo"
    repo.mkdir()
    baseline = init_git_repo(repo)
    write_initiative(repo, paths=["src/app.py", "src/new_module.py"], baseline=baseline)
    run_git(["add", "PROJECT_STATUS.md", "plans"], cwd=repo)
    run_git(["commit", "-m", "plan demo initiative"], cwd=repo)

    (repo / "src" / "app.py").write_text("print('v2')\n", encoding="utf-8")
    (repo / "src" / "new_module.py").write_text("VALUE = 42\n", encoding="utf-8")
    return repo
