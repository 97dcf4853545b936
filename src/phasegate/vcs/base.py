from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

WILDCARD_PATHSPECS = {".", "*", ":/", ":", "-A", "--all"}


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """One porcelain status line: two-letter ``XY`` code plus repository-relative path."""

    code: str
    path: str

    @property
    def index_code(self) -> str:
        return self.code[:1]

    @property
    def worktree_code(self) -> str:
        return self.code[1:2]


class VersionControl(ABC):
    """Narrow capability surface the phase gate needs from version control."""

    @abstractmethod
    def status(self, paths: Sequence[str] | None = None) -> list[StatusEntry]:
        """Return per-path status, restricted to ``paths`` when given."""

    @abstractmethod
    def diff(self, ref: str, paths: Sequence[str], exclude: Sequence[str] = ()) -> str:
        """Return a unified diff from ``ref`` to the working tree for ``paths``."""

    @abstractmethod
    def stage(self, paths: Sequence[str]) -> None:
        """Stage exactly ``paths``."""

    @abstractmethod
    def unstage_all(self) -> None:
        """Reset the index to HEAD without touching the working tree."""

    @abstractmethod
    def staged_paths(self) -> list[str]:
        """Return paths currently staged in the index."""

    @abstractmethod
    def commit(self, message: str) -> str:
        """Commit the index and return the new commit reference."""

    @abstractmethod
    def head(self) -> str:
        """Return the current commit reference."""


def ensure_explicit_paths(paths: Sequence[str]) -> list[str]:
    """Reject empty or wildcard staging requests."""
    explicit = [str(path).strip() for path in paths if str(path).strip()]
    if not explicit:
        raise ValueError("Refusing to stage an empty path list.")
    wildcards = [path for path in explicit if path in WILDCARD_PATHSPECS or "*" in path]
    if wildcards:
        raise ValueError("Refusing wildcard staging pathspecs: " + ", ".join(wildcards))
    return explicit
