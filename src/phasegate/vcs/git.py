from __future__ import annotations

import logging
import subprocess
from collections.abc import Sequence
from pathlib import Path

from phasegate.errors import VersionControlError
from phasegate.vcs.base import StatusEntry, VersionControl, ensure_explicit_paths

logger = logging.getLogger(__name__)


class GitRepository(VersionControl):
    def __init__(self, repo_root: Path) -> None:
        self.repo_root = repo_root.resolve()
        if not self._is_git_repo():
            raise VersionControlError(f"No git repository found at {self.repo_root}")

    def _is_git_repo(self) -> bool:
        proc = subprocess.run(
            ["git", "--no-pager", "rev-parse", "--is-inside-work-tree"],
            cwd=self.repo_root,
            text=True,
            capture_output=True,
        )
        return proc.returncode == 0 and proc.stdout.strip() == "true"

    def _run_git(self, args: list[str], check: bool = True) -> subprocess.CompletedProcess[str]:
        proc = subprocess.run(
            ["git", "--no-pager", *args],
            cwd=self.repo_root,
            text=True,
            capture_output=True,
        )
        if check and proc.returncode != 0:
            raise VersionControlError(
                proc.stderr.strip() or proc.stdout.strip(),
                exit_code=proc.returncode,
            )
        return proc

    @staticmethod
    def _parse_porcelain_z(output: str) -> list[StatusEntry]:
        entries: list[StatusEntry] = []
        tokens = output.split("\0")
        index = 0
        while index < len(tokens):
            token = tokens[index]
            index += 1
            if len(token) < 4:
                continue
            code, path = token[:2], token[3:]
            entries.append(StatusEntry(code=code, path=path))
            if code[0] in {"R", "C"}:
                # -z emits the source as its own field right after the target.
                source = tokens[index] if index < len(tokens) else ""
                index += 1
                if code[0] == "R" and source:
                    entries.append(StatusEntry(code="D ", path=source))
        return entries

    def status(self, paths: Sequence[str] | None = None) -> list[StatusEntry]:
        # A rename is reported as its deletion plus its addition.
        args = ["status", "--porcelain", "-z", "--untracked-files=all", "--no-renames"]
        if paths is not None:
            if not paths:
                return []
            args.extend(["--", *paths])
        proc = self._run_git(args)
        return self._parse_porcelain_z(proc.stdout)

    def diff(self, ref: str, paths: Sequence[str], exclude: Sequence[str] = ()) -> str:
        if not paths:
            return ""
        pathspecs = [*paths, *(f":(exclude){pattern}" for pattern in exclude)]
        proc = self._run_git(["diff", ref, "--", *pathspecs])
        return proc.stdout

    def stage(self, paths: Sequence[str]) -> None:
        explicit = ensure_explicit_paths(paths)
        logger.info("Staging %d path(s): %s", len(explicit), ", ".join(explicit))
        self._run_git(["add", "-A", "--", *explicit])

    def unstage_all(self) -> None:
        logger.info("Resetting index to HEAD")
        self._run_git(["reset", "-q"])

    def staged_paths(self) -> list[str]:
        proc = self._run_git(["diff", "--cached", "--name-only", "--no-renames", "-z"])
        return sorted(item for item in proc.stdout.split("\0") if item)

    def commit(self, message: str) -> str:
        self._run_git(["commit", "-q", "-m", message])
        return self.head()

    def head(self) -> str:
        return self._run_git(["rev-parse", "HEAD"]).stdout.strip()
