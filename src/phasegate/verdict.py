from __future__ import annotations

import re
from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path

from phasegate.errors import MalformedVerdict, MissingVerdict

VERDICT_MARKER = "VERDICT:"
FIXES_HEADING_PATTERN = re.compile(
    r"^(?:#{1,6}[ \t]*)?(?:\*\*)?(?:\d+\.[ \t]*)?Required Fixes(?:\*\*)?[ \t]*:?[ \t]*(?:\*\*)?$",
    re.IGNORECASE,
)
LIST_MARKER_PATTERN = re.compile(r"^(?:[-*+]|\d+[.)])[ \t]+(?:\[[ xX]\][ \t]+)?")


class Decision(StrEnum):
    ACCEPT = "ACCEPT"
    REJECT = "REJECT"


@dataclass(frozen=True, slots=True)
class Verdict:
    decision: Decision
    required_fixes: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.decision is Decision.REJECT and not self.required_fixes:
            raise MalformedVerdict("A REJECT verdict must list at least one required fix.")
        if self.decision is Decision.ACCEPT and self.required_fixes:
            raise MalformedVerdict("An ACCEPT verdict cannot carry required fixes.")

    @property
    def accepted(self) -> bool:
        return self.decision is Decision.ACCEPT

    def to_dict(self) -> dict[str, object]:
        return {"decision": str(self.decision), "required_fixes": list(self.required_fixes)}


def _unwrap(line: str) -> str:
    return line.strip().strip("`*").strip()


def _marker_lines(lines: list[str]) -> list[tuple[int, str]]:
    found: list[tuple[int, str]] = []
    for number, line in enumerate(lines, start=1):
        unwrapped = _unwrap(line)
        if unwrapped.startswith(VERDICT_MARKER):
            found.append((number, unwrapped[len(VERDICT_MARKER):]))
    return found


def _parse_decision(raw: str, line_number: int) -> Decision:
    token = raw.strip().strip("`*").strip()
    try:
        return Decision(token)
    except ValueError as exc:
        raise MalformedVerdict(
            f"Line {line_number}: expected 'VERDICT: ACCEPT' or 'VERDICT: REJECT', got "
            f"'{VERDICT_MARKER} {token}'."
        ) from exc


def extract_required_fixes(text: str) -> list[str]:
    """Items under the first "Required Fixes" heading, in document order."""
    fixes: list[str] = []
    in_section = False
    for line in text.splitlines():
        stripped = line.strip()
        if not in_section:
            if FIXES_HEADING_PATTERN.match(stripped):
                in_section = True
            continue
        if stripped.startswith("#") or _unwrap(stripped).startswith(VERDICT_MARKER):
            break
        if not stripped:
            continue
        item = LIST_MARKER_PATTERN.sub("", stripped, count=1).strip()
        is_continuation = line[:1] in {" ", "\t"} and item == stripped
        if is_continuation and fixes:
            fixes[-1] = f"{fixes[-1]} {item}"
            continue
        if item:
            fixes.append(item)
    return fixes


def parse_verdict(text: str) -> Verdict:
    """Read the single decision line and, for a rejection, its required fixes."""
    markers = _marker_lines(text.splitlines())
    if not markers:
        raise MissingVerdict("No 'VERDICT:' line found in the verdict document.")
    if len(markers) > 1:
        numbers = [number for number, _ in markers]
        raise MissingVerdict(
            "Ambiguous verdict: found 'VERDICT:' on lines "
            + ", ".join(str(number) for number in numbers)
            + ".",
            lines=numbers,
        )
    line_number, raw = markers[0]
    decision = _parse_decision(raw, line_number)
    if decision is Decision.ACCEPT:
        return Verdict(decision=decision)
    fixes = extract_required_fixes(text)
    if not fixes:
        raise MalformedVerdict(
            "REJECT verdict has no items under a 'Required Fixes' heading."
        )
    return Verdict(decision=decision, required_fixes=tuple(fixes))


def load_verdict(path: Path) -> Verdict:
    if not path.is_file():
        raise MissingVerdict(f"Verdict file not found at '{path}'.")
    return parse_verdict(path.read_text(encoding="utf-8"))
