"""Phase-completion review gate.

Per phase the gate moves through::

    NoReview --request--> ReviewRequested --verdict authored--> Accepted --commit--> Committed
                                                             \\-> Rejected (fixes reported)

Mode 1 (request) runs while no verdict document exists; Mode 2 (process) runs once it
does. State and plan are re-read on every invocation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from phasegate import consistency
from phasegate.config import PhaseGateConfig
from phasegate.errors import (
    CommitFailed,
    InitiativeStateError,
    UnplannedChange,
    VerdictAlreadyPresent,
    VersionControlError,
)
from phasegate.plan import PhasePlan, load_phase_plan, load_plan_documents
from phasegate.probe import scan
from phasegate.review import Clock, ReviewArtifact, ReviewArtifactBuilder
from phasegate.status import (
    InitiativeState,
    InitiativeStatus,
    PhaseCommitted,
    advance,
    load_state,
    save_state,
)
from phasegate.vcs.base import VersionControl
from phasegate.verdict import Verdict, load_verdict

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "phasegate.toml"


class GateStage(StrEnum):
    NO_REVIEW = "no_review"
    REVIEW_REQUESTED = "review_requested"
    VERDICT_AVAILABLE = "verdict_available"
    COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class CommitResult:
    commit_ref: str
    message: str
    committed_paths: tuple[str, ...]
    state: InitiativeState


@dataclass(frozen=True, slots=True)
class RequestOutcome:
    plan: PhasePlan
    artifact: ReviewArtifact
    path: Path
    oversized: bool


@dataclass(frozen=True, slots=True)
class ProcessOutcome:
    plan: PhasePlan
    verdict: Verdict
    commit: CommitResult | None = None
    required_fixes: tuple[str, ...] = field(default_factory=tuple)

    @property
    def committed(self) -> bool:
        return self.commit is not None


def commit_message(plan: PhasePlan, tag: str) -> str:
    return f"{tag}: Phase {plan.phase_number} - {plan.deliverable}"


class CommitGate:
    """Stages exactly the planned paths and commits them, or changes nothing."""

    def __init__(
        self,
        repo: VersionControl,
        *,
        message_tag: str = "feat",
        exempt_prefixes: tuple[str, ...] = (),
    ) -> None:
        self.repo = repo
        self.message_tag = message_tag
        self.exempt_prefixes = exempt_prefixes

    def commit(self, plan: PhasePlan, verdict: Verdict, state: InitiativeState) -> CommitResult:
        if not verdict.accepted:
            raise CommitFailed(
                f"Phase {plan.phase_number} cannot be committed with verdict {verdict.decision}."
            )
        if state.status is not InitiativeStatus.ACTIVE or state.current_phase != plan.phase_number:
            raise InitiativeStateError(
                f"Plan is for phase {plan.phase_number} but the initiative is at phase "
                f"{state.current_phase} ({state.status})."
            )

        planned = sorted(plan.intended_paths)
        changeset = scan(self.repo, planned)
        consistency.verify(plan, changeset)
        to_stage = sorted(changeset.paths & set(planned))

        # Whole-tree scan happens only here, before anything is staged.
        residue = consistency.unplanned_paths(
            scan(self.repo, None),
            to_stage,
            exempt_prefixes=self.exempt_prefixes,
        )
        already_staged = [path for path in self.repo.staged_paths() if path not in to_stage]
        if residue or already_staged:
            raise UnplannedChange([*residue, *already_staged])

        self.repo.stage(to_stage)
        unexpected = set(self.repo.staged_paths()) - set(to_stage)
        if unexpected:
            self.repo.unstage_all()
            raise UnplannedChange(unexpected)

        message = commit_message(plan, self.message_tag)
        try:
            commit_ref = self.repo.commit(message)
        except VersionControlError as exc:
            raise CommitFailed(
                f"Commit for phase {plan.phase_number} failed: {exc}. "
                "Staged files were left in the index for manual resolution.",
                staged=to_stage,
            ) from exc
        logger.info("Committed phase %d as %s", plan.phase_number, commit_ref)

        new_state = advance(
            state,
            PhaseCommitted(
                phase_number=plan.phase_number,
                commit_ref=commit_ref,
                final_phase=plan.is_final_phase,
            ),
        )
        return CommitResult(
            commit_ref=commit_ref,
            message=message,
            committed_paths=tuple(to_stage),
            state=new_state,
        )


class PhaseGate:
    def __init__(
        self,
        repo_root: Path,
        repo: VersionControl,
        config: PhaseGateConfig,
        *,
        clock: Clock | None = None,
        config_file: str | None = CONFIG_FILENAME,
    ) -> None:
        self.repo_root = repo_root.resolve()
        self.repo = repo
        self.config = config
        self.clock = clock
        self.config_file = config_file

    def load_state(self) -> InitiativeState:
        return load_state(self.repo_root, self.config.project.status_file)

    def load_plan(self, state: InitiativeState | None = None) -> PhasePlan:
        return load_phase_plan(self.repo_root, state or self.load_state())

    def _initiative_dir(self, state: InitiativeState) -> Path:
        return self.repo_root / state.path

    def request_path(self, state: InitiativeState) -> Path:
        return self._initiative_dir(state) / self.config.review.request_name(state.current_phase)

    def verdict_path(self, state: InitiativeState) -> Path:
        return self._initiative_dir(state) / self.config.review.verdict_name(state.current_phase)

    def stage(self, state: InitiativeState | None = None) -> GateStage:
        current = state or self.load_state()
        if current.status is InitiativeStatus.COMPLETED:
            return GateStage.COMPLETED
        if self.verdict_path(current).is_file():
            return GateStage.VERDICT_AVAILABLE
        if self.request_path(current).is_file():
            return GateStage.REVIEW_REQUESTED
        return GateStage.NO_REVIEW

    def _require_active(self, state: InitiativeState) -> None:
        if state.status is not InitiativeStatus.ACTIVE:
            raise InitiativeStateError(
                f"Initiative '{state.name or state.path}' is {state.status}; nothing to review."
            )

    def _exempt_prefixes(self, state: InitiativeState) -> tuple[str, ...]:
        # Gate-managed documents change alongside every phase.
        prefixes = [self.config.project.status_file, state.path.rstrip("/") + "/"]
        if self.config_file:
            prefixes.append(self.config_file)
        return tuple(prefixes)

    def request_review(self) -> RequestOutcome:
        state = self.load_state()
        self._require_active(state)
        verdict_path = self.verdict_path(state)
        if verdict_path.is_file():
            raise VerdictAlreadyPresent(str(verdict_path))
        plan = self.load_plan(state)
        logger.info(
            "Preparing review for phase %d of initiative at '%s'",
            plan.phase_number,
            plan.initiative_path,
        )
        changeset = scan(self.repo, plan.intended_paths)
        consistency.verify(plan, changeset)
        logger.info("All planned files are present in the repository status")

        builder = ReviewArtifactBuilder(self.repo, self.config.review, clock=self.clock)
        artifact = builder.build(
            plan,
            changeset,
            load_plan_documents(self.repo_root, plan),
            initiative_name=state.name,
        )
        path = builder.write(artifact, self.request_path(state))
        return RequestOutcome(
            plan=plan,
            artifact=artifact,
            path=path,
            oversized=artifact.diff_line_count > self.config.review.max_diff_lines,
        )

    def process_verdict(self) -> ProcessOutcome:
        state = self.load_state()
        self._require_active(state)
        plan = self.load_plan(state)
        verdict = load_verdict(self.verdict_path(state))
        if not verdict.accepted:
            logger.info(
                "Phase %d rejected with %d required fix(es)",
                plan.phase_number,
                len(verdict.required_fixes),
            )
            return ProcessOutcome(
                plan=plan,
                verdict=verdict,
                required_fixes=verdict.required_fixes,
            )

        gate = CommitGate(
            self.repo,
            message_tag=self.config.commit.message_tag,
            exempt_prefixes=self._exempt_prefixes(state),
        )
        result = gate.commit(plan, verdict, state)
        save_state(self.repo_root, self.config.project.status_file, result.state)
        logger.info(
            "Initiative advanced to phase %d (%s)",
            result.state.current_phase,
            result.state.status,
        )
        return ProcessOutcome(plan=plan, verdict=verdict, commit=result)

    def run(self) -> RequestOutcome | ProcessOutcome:
        state = self.load_state()
        self._require_active(state)
        if self.verdict_path(state).is_file():
            return self.process_verdict()
        return self.request_review()
