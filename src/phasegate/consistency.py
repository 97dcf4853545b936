from __future__ import annotations

from collections.abc import Iterable

from phasegate.errors import MissingPlannedChange, UnplannedChange
from phasegate.plan import PhasePlan
from phasegate.probe import ChangeSet


def missing_planned_paths(plan: PhasePlan, changeset: ChangeSet) -> list[str]:
    return [path for path in sorted(plan.intended_paths) if path not in changeset]


def verify(plan: PhasePlan, changeset: ChangeSet) -> None:
    """Every planned path must show some change; the first gap is reported by name."""
    missing = missing_planned_paths(plan, changeset)
    if missing:
        raise MissingPlannedChange(missing[0], missing=missing)


def _is_exempt(path: str, prefix: str) -> bool:
    # Trailing slash marks a directory; anything else must match exactly.
    if prefix.endswith("/"):
        return path.startswith(prefix)
    return path == prefix


def unplanned_paths(
    changeset: ChangeSet,
    allowed: Iterable[str],
    *,
    exempt_prefixes: Iterable[str] = (),
) -> list[str]:
    allowed_set = set(allowed)
    prefixes = tuple(exempt_prefixes)
    residue: list[str] = []
    for path in sorted(changeset.paths):
        if path in allowed_set:
            continue
        if any(_is_exempt(path, prefix) for prefix in prefixes):
            continue
        residue.append(path)
    return residue


def verify_no_unplanned(
    changeset: ChangeSet,
    allowed: Iterable[str],
    *,
    exempt_prefixes: Iterable[str] = (),
) -> None:
    """Every changed path outside ``allowed`` is a violation."""
    residue = unplanned_paths(changeset, allowed, exempt_prefixes=exempt_prefixes)
    if residue:
        raise UnplannedChange(residue)
