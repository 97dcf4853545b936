from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from phasegate.config import ReviewConfig
from phasegate.files import write_text_atomic
from phasegate.plan import PhasePlan, PlanDocument
from phasegate.probe import ChangeSet
from phasegate.vcs.base import VersionControl

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True, slots=True)
class ReviewArtifact:
    phase_number: int
    phase_name: str
    initiative_name: str
    initiative_path: str
    baseline_ref: str
    generated_at: str
    plan_documents: tuple[PlanDocument, ...]
    diff: str
    verdict_filename: str

    @property
    def diff_line_count(self) -> int:
        return len(self.diff.splitlines())

    def render(self) -> str:
        lines = [
            f"# Review Request: Phase {self.phase_number} - {self.phase_name}",
            "",
            f"**Initiative:** {self.initiative_name}",
            f"**Generated:** {self.generated_at}",
            "",
            "## Instructions for Reviewer",
            "1.  Analyze the planning documents and the code changes (`git diff`) below.",
            f"2.  Create a new file named `{self.verdict_filename}` in this same directory "
            f"(`{self.initiative_path}/`).",
            "3.  In your review file, you **MUST** provide a clear verdict on a single line: "
            "`VERDICT: ACCEPT` or `VERDICT: REJECT`.",
            "4.  If rejecting, you **MUST** provide a list of specific, actionable fixes under "
            'a "Required Fixes" heading.',
            "",
            "---",
            "## 1. Planning Documents",
            "",
        ]
        for document in self.plan_documents:
            lines.extend(
                [
                    f"### {document.title} (`{document.filename}`)",
                    "```markdown",
                    document.content.rstrip("\n"),
                    "```",
                    "",
                ]
            )
        lines.extend(
            [
                "---",
                "## 2. Code Changes for This Phase",
                "",
                f"**Baseline Commit:** {self.baseline_ref}",
                "",
                "```diff",
                self.diff.rstrip("\n"),
                "```",
            ]
        )
        return "\n".join(lines) + "\n"


class ReviewArtifactBuilder:
    """Assembles the review request for one phase from its plan and a scoped diff."""

    def __init__(
        self,
        repo: VersionControl,
        config: ReviewConfig,
        *,
        clock: Clock | None = None,
    ) -> None:
        self.repo = repo
        self.config = config
        self.clock = clock or datetime.now

    @contextmanager
    def _staged_for_diff(self, paths: Sequence[str]) -> Iterator[None]:
        if not paths:
            yield
            return
        logger.info("Staging new planned file(s) for review diff: %s", ", ".join(paths))
        self.repo.stage(paths)
        try:
            yield
        finally:
            logger.info("Unstaging new files; they are re-staged at commit time")
            self.repo.unstage_all()

    def build(
        self,
        plan: PhasePlan,
        changeset: ChangeSet,
        documents: Sequence[PlanDocument],
        *,
        initiative_name: str = "",
    ) -> ReviewArtifact:
        new_planned = sorted(changeset.untracked & set(plan.intended_paths))
        with self._staged_for_diff(new_planned):
            logger.info(
                "Generating targeted diff against baseline '%s' for %d intended file(s)",
                plan.baseline_ref,
                len(plan.intended_paths),
            )
            diff = self.repo.diff(
                plan.baseline_ref,
                sorted(plan.intended_paths),
                exclude=self.config.excluded_patterns,
            )

        artifact = ReviewArtifact(
            phase_number=plan.phase_number,
            phase_name=plan.phase_name,
            initiative_name=initiative_name,
            initiative_path=plan.initiative_path,
            baseline_ref=plan.baseline_ref,
            generated_at=self.clock().strftime(TIMESTAMP_FORMAT),
            plan_documents=tuple(documents),
            diff=diff,
            verdict_filename=self.config.verdict_name(plan.phase_number),
        )
        if artifact.diff_line_count > self.config.max_diff_lines:
            logger.warning(
                "The generated diff is very large (%d lines, limit %d). A data file or "
                "unintended large file may be listed in '%s'.",
                artifact.diff_line_count,
                self.config.max_diff_lines,
                plan.checklist_name(),
            )
        return artifact

    def write(self, artifact: ReviewArtifact, path: Path) -> Path:
        write_text_atomic(path, artifact.render())
        logger.info("Review request file generated at: %s", path)
        return path
