from pathlib import Path

import pytest

from conftest import write_initiative
from phasegate.errors import InitiativeStateError
from phasegate.status import (
    InitiativeState,
    InitiativeStatus,
    PhaseCommitted,
    advance,
    load_state,
    parse_status_text,
    render_status_text,
    save_state,
)

STATUS_TEXT = """# Status

### Previous Initiative
Name: Old Work
Path: `plans/old`
Current Phase: 9

### Current Active Initiative
- **Name:** Search Rewrite
- **Path:** `plans/search/`
- **Current Phase:** 2 (Parser)
- **Status:** Active

## Notes
Path: `ignored/elsewhere`
"""


def test_only_the_active_block_is_parsed() -> None:
    fields = parse_status_text(STATUS_TEXT)

    assert fields == {
        "Name": "Search Rewrite",
        "Path": "plans/search/",
        "Current Phase": "2 (Parser)",
        "Status": "Active",
    }


def test_missing_active_block_is_an_error() -> None:
    with pytest.raises(InitiativeStateError, match="Current Active Initiative"):
        parse_status_text("# Status\nNothing here.\n")


def test_load_state_reads_status_and_last_commit(tmp_path: Path) -> None:
    write_initiative(tmp_path, paths=["src/a.py"], baseline="cafe1234")

    state = load_state(tmp_path, "PROJECT_STATUS.md")

    assert state == InitiativeState(
        path="plans/demo",
        name="Demo Initiative",
        current_phase=1,
        status=InitiativeStatus.ACTIVE,
        last_commit_ref="cafe1234",
    )


def test_load_state_requires_current_phase(tmp_path: Path) -> None:
    (tmp_path / "PROJECT_STATUS.md").write_text(
        "### Current Active Initiative\nPath: `plans/x`\n", encoding="utf-8"
    )

    with pytest.raises(InitiativeStateError, match="Current Phase"):
        load_state(tmp_path, "PROJECT_STATUS.md")


def test_advance_increments_phase_and_records_commit() -> None:
    state = InitiativeState(path="plans/demo", name="Demo", current_phase=1, last_commit_ref="a")

    advanced = advance(state, PhaseCommitted(phase_number=1, commit_ref="b", final_phase=False))

    assert advanced.current_phase == 2
    assert advanced.status is InitiativeStatus.ACTIVE
    assert advanced.last_commit_ref == "b"
    assert state.current_phase == 1


def test_advance_on_final_phase_completes_initiative() -> None:
    state = InitiativeState(path="plans/demo", name="Demo", current_phase=3)

    advanced = advance(state, PhaseCommitted(phase_number=3, commit_ref="f00d", final_phase=True))

    assert advanced.current_phase == 3
    assert advanced.status is InitiativeStatus.COMPLETED
    assert advanced.last_commit_ref == "f00d"


def test_advance_rejects_mismatched_or_inactive_state() -> None:
    state = InitiativeState(path="plans/demo", name="Demo", current_phase=2)
    with pytest.raises(InitiativeStateError, match="does not match"):
        advance(state, PhaseCommitted(phase_number=1, commit_ref="x", final_phase=False))

    done = InitiativeState(
        path="plans/demo", name="Demo", current_phase=2, status=InitiativeStatus.COMPLETED
    )
    with pytest.raises(InitiativeStateError, match="not active"):
        advance(done, PhaseCommitted(phase_number=2, commit_ref="x", final_phase=True))


def test_render_status_text_only_touches_active_block() -> None:
    state = InitiativeState(
        path="plans/search",
        name="Search Rewrite",
        current_phase=3,
        status=InitiativeStatus.COMPLETED,
    )

    rendered = render_status_text(STATUS_TEXT, state)

    assert "- **Current Phase:** 3 (Parser)" in rendered
    assert "- **Status:** Completed" in rendered
    assert "Current Phase: 9" in rendered
    assert rendered.endswith("\n")


def test_render_status_text_adds_missing_status_line() -> None:
    text = "### Current Active Initiative\nPath: `plans/x`\nCurrent Phase: 1\n"
    state = InitiativeState(path="plans/x", name="", current_phase=2)

    rendered = render_status_text(text, state)

    assert rendered == (
        "### Current Active Initiative\nPath: `plans/x`\nCurrent Phase: 2\nStatus: Active\n"
    )


def test_save_state_round_trips(tmp_path: Path) -> None:
    write_initiative(tmp_path, paths=["src/a.py"], baseline="base000")
    state = load_state(tmp_path, "PROJECT_STATUS.md")
    advanced = advance(state, PhaseCommitted(phase_number=1, commit_ref="9f8e7d", final_phase=False))

    save_state(tmp_path, "PROJECT_STATUS.md", advanced)

    assert load_state(tmp_path, "PROJECT_STATUS.md") == advanced
    implementation = (tmp_path / "plans" / "demo" / "implementation.md").read_text(encoding="utf-8")
    assert "Last Phase Commit Hash: 9f8e7d" in implementation
    assert "### **Phase 2: Wiring**" in implementation
    assert not list((tmp_path / "plans" / "demo").glob(".tmp-*"))
