"""Phase plan index.

A phase plan is assembled from three initiative documents:

* ``phase_<N>_checklist.md`` names the files in scope as backtick-quoted paths.
* ``implementation.md`` holds the ``### **Phase N: <name>**`` headings, a
  ``Deliverable:`` line per phase and the ``Last Phase Commit Hash:`` baseline.
* ``plan.md`` is optional free text shown to the reviewer.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from phasegate.errors import MalformedPlan
from phasegate.status import IMPLEMENTATION_FILE, InitiativeState, read_last_commit_ref

PLAN_FILE = "plan.md"

PATH_TOKEN_PATTERN = re.compile(r"`([A-Za-z0-9/._-]+)`")
PHASE_HEADING_PATTERN = re.compile(
    r"^#{2,4}[ \t]*(?:\*\*)?Phase[ \t]+(\d+)[ \t]*:[ \t]*(.*?)[ \t]*(?:\*\*)?[ \t]*$",
    re.MULTILINE,
)
DELIVERABLE_PATTERN = re.compile(
    r"^[ \t]*(?:[-*][ \t]+)?(?:\*\*)?Deliverable(?:\*\*)?[ \t]*:[ \t]*(?:\*\*)?[ \t]*(.+?)[ \t]*$",
    re.MULTILINE,
)


@dataclass(frozen=True, slots=True)
class PhasePlan:
    initiative_path: str
    phase_number: int
    phase_name: str
    deliverable: str
    baseline_ref: str
    intended_paths: tuple[str, ...]
    total_phases: int

    def __post_init__(self) -> None:
        if not self.intended_paths:
            raise MalformedPlan(f"Phase {self.phase_number} declares no intended paths.")
        if self.phase_number < 1:
            raise MalformedPlan(f"Phase number must be positive, got {self.phase_number}.")

    @property
    def is_final_phase(self) -> bool:
        return self.phase_number >= self.total_phases

    def checklist_name(self) -> str:
        return checklist_filename(self.phase_number)


@dataclass(frozen=True, slots=True)
class PlanDocument:
    title: str
    filename: str
    content: str


def checklist_filename(phase_number: int) -> str:
    return f"phase_{phase_number}_checklist.md"


def is_path_like(token: str) -> bool:
    return "/" in token and bool(PurePosixPath(token).suffix)


def parse_intended_paths(checklist_text: str, *, source: str | None = None) -> list[str]:
    """Return the sorted, deduplicated backtick-quoted file paths of a checklist."""
    tokens = PATH_TOKEN_PATTERN.findall(checklist_text)
    paths = sorted({token for token in tokens if is_path_like(token)})
    if not paths:
        where = f" in '{source}'" if source else ""
        raise MalformedPlan(
            f"Could not parse any intended file paths{where}.",
            source=source,
        )
    return paths


def parse_phase_headings(implementation_text: str) -> dict[int, str]:
    headings: dict[int, str] = {}
    for match in PHASE_HEADING_PATTERN.finditer(implementation_text):
        number = int(match.group(1))
        headings.setdefault(number, match.group(2).strip())
    return headings


def phase_section(implementation_text: str, phase_number: int) -> str | None:
    matches = list(PHASE_HEADING_PATTERN.finditer(implementation_text))
    for index, match in enumerate(matches):
        if int(match.group(1)) != phase_number:
            continue
        end = matches[index + 1].start() if index + 1 < len(matches) else len(implementation_text)
        return implementation_text[match.end():end]
    return None


def parse_deliverable(implementation_text: str, phase_number: int) -> str | None:
    section = phase_section(implementation_text, phase_number)
    if section is None:
        return None
    match = DELIVERABLE_PATTERN.search(section)
    if match is None:
        return None
    return match.group(1).strip().strip("`").strip()


def _read_required(path: Path, label: str) -> str:
    if not path.is_file():
        raise MalformedPlan(f"{label} file not found at '{path}'.", source=str(path))
    return path.read_text(encoding="utf-8")


def load_phase_plan(repo_root: Path, state: InitiativeState) -> PhasePlan:
    """Build the plan for the active phase. Recomputed on every call, never cached."""
    initiative_dir = repo_root / state.path
    implementation_path = initiative_dir / IMPLEMENTATION_FILE
    checklist_path = initiative_dir / checklist_filename(state.current_phase)

    implementation_text = _read_required(implementation_path, "Implementation")
    checklist_text = _read_required(checklist_path, "Checklist")

    headings = parse_phase_headings(implementation_text)
    if state.current_phase not in headings:
        raise MalformedPlan(
            f"Phase {state.current_phase} has no heading in '{implementation_path}'.",
            source=str(implementation_path),
        )
    phase_name = headings[state.current_phase]
    deliverable = parse_deliverable(implementation_text, state.current_phase) or phase_name
    if not deliverable:
        raise MalformedPlan(
            f"Phase {state.current_phase} has neither a deliverable nor a name.",
            source=str(implementation_path),
        )
    baseline_ref = read_last_commit_ref(implementation_text)
    if baseline_ref is None:
        raise MalformedPlan(
            f"Could not find 'Last Phase Commit Hash:' in '{implementation_path}'.",
            source=str(implementation_path),
        )

    return PhasePlan(
        initiative_path=state.path,
        phase_number=state.current_phase,
        phase_name=phase_name,
        deliverable=deliverable,
        baseline_ref=baseline_ref,
        intended_paths=tuple(parse_intended_paths(checklist_text, source=str(checklist_path))),
        total_phases=max(headings),
    )


def load_plan_documents(repo_root: Path, plan: PhasePlan) -> list[PlanDocument]:
    """Planning documents in reviewer order; ``plan.md`` is skipped when absent."""
    initiative_dir = repo_root / plan.initiative_path
    documents: list[PlanDocument] = []
    plan_path = initiative_dir / PLAN_FILE
    if plan_path.is_file():
        documents.append(
            PlanDocument("R&D Plan", PLAN_FILE, plan_path.read_text(encoding="utf-8"))
        )
    documents.append(
        PlanDocument(
            "Implementation Plan",
            IMPLEMENTATION_FILE,
            _read_required(initiative_dir / IMPLEMENTATION_FILE, "Implementation"),
        )
    )
    documents.append(
        PlanDocument(
            "Phase Checklist",
            plan.checklist_name(),
            _read_required(initiative_dir / plan.checklist_name(), "Checklist"),
        )
    )
    return documents
