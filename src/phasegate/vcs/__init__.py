from phasegate.vcs.base import StatusEntry, VersionControl, ensure_explicit_paths
from phasegate.vcs.git import GitRepository

__all__ = [
    "GitRepository",
    "StatusEntry",
    "VersionControl",
    "ensure_explicit_paths",
]
