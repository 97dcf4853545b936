from pathlib import Path

import pytest

from phasegate.errors import MalformedVerdict, MissingVerdict
from phasegate.verdict import Decision, load_verdict, parse_verdict


def test_accept_verdict() -> None:
    verdict = parse_verdict("# Review\n\nLooks good.\n\nVERDICT: ACCEPT\n")

    assert verdict.decision is Decision.ACCEPT
    assert verdict.accepted is True
    assert verdict.required_fixes == ()


def test_reject_verdict_keeps_fixes_verbatim_and_in_order() -> None:
    text = """# Review of Phase 2

**VERDICT: REJECT**

## Required Fixes
1. fix X
2. fix Y

## Notes
- nice naming
"""

    verdict = parse_verdict(text)

    assert verdict.decision is Decision.REJECT
    assert verdict.required_fixes == ("fix X", "fix Y")


def test_fix_items_strip_list_markers_and_join_continuations() -> None:
    text = """VERDICT: REJECT

**Required Fixes:**
- [ ] Guard `parse()` against empty input,
  and add a regression test.
* Rename `tmp` to `buffer`
"""

    verdict = parse_verdict(text)

    assert verdict.required_fixes == (
        "Guard `parse()` against empty input, and add a regression test.",
        "Rename `tmp` to `buffer`",
    )


def test_missing_verdict_line_is_an_error() -> None:
    with pytest.raises(MissingVerdict, match="No 'VERDICT:' line"):
        parse_verdict("# Review\n\nI think it is fine.\n")


def test_two_verdict_lines_are_ambiguous() -> None:
    with pytest.raises(MissingVerdict) as excinfo:
        parse_verdict("VERDICT: ACCEPT\n\nOn reflection:\nVERDICT: REJECT\n")

    assert excinfo.value.lines == [1, 4]


def test_reject_without_fixes_is_malformed() -> None:
    with pytest.raises(MalformedVerdict, match="Required Fixes"):
        parse_verdict("VERDICT: REJECT\n\n## Required Fixes\n\n## Notes\n- none\n")


def test_reject_without_fixes_heading_is_malformed() -> None:
    with pytest.raises(MalformedVerdict):
        parse_verdict("VERDICT: REJECT\n\n- fix X\n")


def test_unknown_decision_token_is_malformed() -> None:
    with pytest.raises(MalformedVerdict, match="MAYBE"):
        parse_verdict("VERDICT: MAYBE\n")


def test_load_verdict_requires_file(tmp_path: Path) -> None:
    with pytest.raises(MissingVerdict, match="not found"):
        load_verdict(tmp_path / "review_phase_1.md")
