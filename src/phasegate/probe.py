"""Repository state probe: normalizes version-control status into a change-set."""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Literal

from phasegate.vcs.base import StatusEntry, VersionControl

ChangeKind = Literal["added", "modified", "untracked", "deleted"]
CHANGE_KINDS: tuple[ChangeKind, ...] = ("added", "modified", "untracked", "deleted")


@dataclass(frozen=True, slots=True)
class ChangeSet:
    added: frozenset[str] = field(default_factory=frozenset)
    modified: frozenset[str] = field(default_factory=frozenset)
    untracked: frozenset[str] = field(default_factory=frozenset)
    deleted: frozenset[str] = field(default_factory=frozenset)

    def __post_init__(self) -> None:
        seen: dict[str, str] = {}
        for kind in CHANGE_KINDS:
            for path in getattr(self, kind):
                if path in seen:
                    raise ValueError(
                        f"Path '{path}' classified as both {seen[path]} and {kind}."
                    )
                seen[path] = kind

    @classmethod
    def from_entries(cls, entries: Iterable[StatusEntry]) -> ChangeSet:
        buckets: dict[str, set[str]] = {kind: set() for kind in CHANGE_KINDS}
        seen: set[str] = set()
        for entry in entries:
            kind = classify(entry)
            # A staged deletion re-created on disk is listed twice; the first entry wins.
            if kind is None or entry.path in seen:
                continue
            seen.add(entry.path)
            buckets[kind].add(entry.path)
        return cls(**{kind: frozenset(paths) for kind, paths in buckets.items()})

    @property
    def paths(self) -> frozenset[str]:
        return self.added | self.modified | self.untracked | self.deleted

    def kind_of(self, path: str) -> ChangeKind | None:
        for kind in CHANGE_KINDS:
            if path in getattr(self, kind):
                return kind
        return None

    def restricted_to(self, paths: Iterable[str]) -> ChangeSet:
        allowed = set(paths)
        return ChangeSet(
            added=self.added & allowed,
            modified=self.modified & allowed,
            untracked=self.untracked & allowed,
            deleted=self.deleted & allowed,
        )

    def __contains__(self, path: object) -> bool:
        return path in self.paths

    def __len__(self) -> int:
        return len(self.paths)

    def to_dict(self) -> dict[str, list[str]]:
        return {kind: sorted(getattr(self, kind)) for kind in CHANGE_KINDS}


def classify(entry: StatusEntry) -> ChangeKind | None:
    code = entry.code
    if code == "??":
        return "untracked"
    if code == "!!":
        return None
    if "D" in code:
        return "deleted"
    if entry.index_code in {"A", "R", "C"}:
        return "added"
    if code.strip():
        return "modified"
    return None


def scan(repo: VersionControl, paths: Sequence[str] | None = None) -> ChangeSet:
    """Inspect repository status, restricted to ``paths`` unless ``None`` is passed.

    An empty filter yields an empty change-set rather than a whole-tree scan.
    """
    if paths is not None and not paths:
        return ChangeSet()
    entries = repo.status(sorted(paths) if paths is not None else None)
    changeset = ChangeSet.from_entries(entries)
    if paths is not None:
        changeset = changeset.restricted_to(paths)
    return changeset
