"""Initiative status record: parsing, pure transitions and persistence.

The record lives in two documents. The status file carries a
``### Current Active Initiative`` block::

    ### Current Active Initiative
    Name: Search Rewrite
    Path: `plans/search_rewrite`
    Current Phase: 2
    Status: Active

and ``<Path>/implementation.md`` carries ``Last Phase Commit Hash: <ref>``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, replace
from enum import StrEnum
from pathlib import Path

from phasegate.errors import InitiativeStateError
from phasegate.files import write_text_atomic

ACTIVE_BLOCK_HEADING = "### Current Active Initiative"
IMPLEMENTATION_FILE = "implementation.md"

FIELD_PATTERN = re.compile(
    r"^(?P<prefix>[ \t]*(?:[-*][ \t]+)?(?:\*\*)?(?P<key>Name|Path|Current Phase|Status)"
    r"(?:\*\*)?[ \t]*:[ \t]*(?:\*\*)?[ \t]*)(?P<value>.*?)(?P<suffix>[ \t]*)$"
)
BASELINE_PATTERN = re.compile(
    r"^(?P<prefix>[ \t]*(?:[-*][ \t]+)?(?:\*\*)?Last Phase Commit Hash:(?:\*\*)?[ \t]*`?)"
    r"(?P<value>[^\s`*]+)",
    re.MULTILINE,
)


class InitiativeStatus(StrEnum):
    ACTIVE = "Active"
    COMPLETED = "Completed"


@dataclass(frozen=True, slots=True)
class InitiativeState:
    path: str
    name: str
    current_phase: int
    status: InitiativeStatus = InitiativeStatus.ACTIVE
    last_commit_ref: str | None = None

    def to_dict(self) -> dict[str, object]:
        return {
            "path": self.path,
            "name": self.name,
            "current_phase": self.current_phase,
            "status": str(self.status),
            "last_commit_ref": self.last_commit_ref,
        }


@dataclass(frozen=True, slots=True)
class PhaseCommitted:
    phase_number: int
    commit_ref: str
    final_phase: bool


def advance(state: InitiativeState, event: PhaseCommitted) -> InitiativeState:
    """Return the state that follows a successful phase commit."""
    if state.status is not InitiativeStatus.ACTIVE:
        raise InitiativeStateError(f"Initiative '{state.name}' is not active.")
    if event.phase_number != state.current_phase:
        raise InitiativeStateError(
            f"Committed phase {event.phase_number} does not match active phase "
            f"{state.current_phase}."
        )
    if event.final_phase:
        return replace(
            state,
            status=InitiativeStatus.COMPLETED,
            last_commit_ref=event.commit_ref,
        )
    return replace(
        state,
        current_phase=state.current_phase + 1,
        last_commit_ref=event.commit_ref,
    )


def _active_block_bounds(lines: list[str]) -> tuple[int, int] | None:
    start: int | None = None
    for index, line in enumerate(lines):
        stripped = line.strip()
        if start is None:
            if stripped.startswith(ACTIVE_BLOCK_HEADING):
                start = index + 1
            continue
        if stripped.startswith("#"):
            return start, index
    if start is None:
        return None
    return start, len(lines)


def _clean_value(raw: str) -> str:
    return raw.strip().strip("`").strip()


def parse_status_text(text: str, *, source: str = "status file") -> dict[str, str]:
    lines = text.splitlines()
    bounds = _active_block_bounds(lines)
    if bounds is None:
        raise InitiativeStateError(f"No '{ACTIVE_BLOCK_HEADING}' block in {source}.")
    fields: dict[str, str] = {}
    for line in lines[bounds[0]:bounds[1]]:
        match = FIELD_PATTERN.match(line)
        if match is None:
            continue
        fields.setdefault(match.group("key"), _clean_value(match.group("value")))
    return fields


def read_last_commit_ref(implementation_text: str) -> str | None:
    match = BASELINE_PATTERN.search(implementation_text)
    return match.group("value") if match else None


def state_from_fields(
    fields: dict[str, str],
    *,
    last_commit_ref: str | None = None,
    source: str = "status file",
) -> InitiativeState:
    path = fields.get("Path", "")
    if not path:
        raise InitiativeStateError(f"Could not parse initiative Path from {source}.")
    phase_match = re.match(r"\d+", fields.get("Current Phase", ""))
    if phase_match is None:
        raise InitiativeStateError(f"Could not parse Current Phase from {source}.")
    current_phase = int(phase_match.group(0))
    if current_phase < 1:
        raise InitiativeStateError(f"Current Phase must be positive in {source}.")
    raw_status = fields.get("Status", InitiativeStatus.ACTIVE.value)
    try:
        status = InitiativeStatus(raw_status.capitalize())
    except ValueError as exc:
        raise InitiativeStateError(
            f"Unsupported initiative Status '{raw_status}' in {source}."
        ) from exc
    return InitiativeState(
        path=path.rstrip("/"),
        name=fields.get("Name", ""),
        current_phase=current_phase,
        status=status,
        last_commit_ref=last_commit_ref,
    )


def load_state(repo_root: Path, status_file: str) -> InitiativeState:
    status_path = repo_root / status_file
    if not status_path.is_file():
        raise InitiativeStateError(f"Status file not found at '{status_path}'.")
    fields = parse_status_text(status_path.read_text(encoding="utf-8"), source=str(status_path))
    state = state_from_fields(fields, source=str(status_path))
    implementation_path = repo_root / state.path / IMPLEMENTATION_FILE
    if implementation_path.is_file():
        state = replace(
            state,
            last_commit_ref=read_last_commit_ref(implementation_path.read_text(encoding="utf-8")),
        )
    return state


def render_status_text(text: str, state: InitiativeState) -> str:
    """Rewrite the phase and status lines of the active block, leaving the rest intact."""
    lines = text.splitlines()
    bounds = _active_block_bounds(lines)
    if bounds is None:
        raise InitiativeStateError(f"No '{ACTIVE_BLOCK_HEADING}' block to update.")
    start, end = bounds
    status_written = False
    last_field_index = start - 1
    for index in range(start, end):
        match = FIELD_PATTERN.match(lines[index])
        if match is None:
            continue
        last_field_index = index
        key = match.group("key")
        if key == "Current Phase":
            value = re.sub(r"\d+", str(state.current_phase), match.group("value"), count=1)
        elif key == "Status" and not status_written:
            value = str(state.status)
            status_written = True
        else:
            continue
        lines[index] = f"{match.group('prefix')}{value}{match.group('suffix')}"
    if not status_written:
        lines.insert(last_field_index + 1, f"Status: {state.status}")
    trailing = "\n" if text.endswith("\n") else ""
    return "\n".join(lines) + trailing


def render_implementation_text(text: str, commit_ref: str) -> str:
    if BASELINE_PATTERN.search(text) is None:
        raise InitiativeStateError("No 'Last Phase Commit Hash:' line to update.")
    return BASELINE_PATTERN.sub(
        lambda match: f"{match.group('prefix')}{commit_ref}",
        text,
        count=1,
    )


def save_state(repo_root: Path, status_file: str, state: InitiativeState) -> None:
    """Persist ``state``; both documents are fully rendered before either is written."""
    status_path = repo_root / status_file
    implementation_path = repo_root / state.path / IMPLEMENTATION_FILE
    status_text = render_status_text(status_path.read_text(encoding="utf-8"), state)
    implementation_text: str | None = None
    if state.last_commit_ref:
        implementation_text = render_implementation_text(
            implementation_path.read_text(encoding="utf-8"),
            state.last_commit_ref,
        )
    if implementation_text is not None:
        write_text_atomic(implementation_path, implementation_text)
    write_text_atomic(status_path, status_text)
