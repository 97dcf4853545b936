from __future__ import annotations

from collections.abc import Iterable


class PhaseGateError(RuntimeError):
    """Base class for every terminal phase-gate diagnostic."""


class MalformedPlan(PhaseGateError):
    """Raised when a plan document is missing or yields no usable data."""

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(message)
        self.source = source


class MissingPlannedChange(PhaseGateError):
    """Raised when a planned path shows no change in the repository."""

    def __init__(self, path: str, *, missing: Iterable[str] | None = None) -> None:
        self.path = path
        self.missing = sorted(set(missing or [path]))
        super().__init__(
            f"A planned file is missing from the repository's changed files: {path}. "
            "Ensure it was created/modified as per the checklist."
        )


class UnplannedChange(PhaseGateError):
    """Raised when the working tree holds changes outside the phase plan."""

    def __init__(self, paths: Iterable[str]) -> None:
        self.paths = sorted(set(paths))
        super().__init__(
            "Unplanned changes detected outside the phase checklist: "
            + ", ".join(self.paths)
        )


class MissingVerdict(PhaseGateError):
    """Raised when a verdict document has zero or several verdict lines."""

    def __init__(self, message: str, *, lines: list[int] | None = None) -> None:
        super().__init__(message)
        self.lines = list(lines or [])


class VerdictAlreadyPresent(PhaseGateError):
    """Raised when a review is requested for a phase that already has a verdict."""

    def __init__(self, path: str) -> None:
        self.path = path
        super().__init__(
            f"A verdict already exists at '{path}'. Process it, or remove it before "
            "requesting a new review."
        )


class MalformedVerdict(PhaseGateError):
    """Raised when a verdict line is unreadable or a rejection carries no fixes."""


class CommitFailed(PhaseGateError):
    """Raised when the underlying commit primitive refuses the commit."""

    def __init__(self, message: str, *, staged: Iterable[str] | None = None) -> None:
        super().__init__(message)
        self.staged = sorted(set(staged or []))


class InitiativeStateError(PhaseGateError):
    """Raised when the persisted initiative status record cannot be used."""


class VersionControlError(PhaseGateError):
    """Raised when a version-control command fails."""

    def __init__(self, message: str, *, exit_code: int | None = None) -> None:
        super().__init__(message)
        self.exit_code = exit_code
