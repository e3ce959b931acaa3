from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


NULL_SHA = "0" * 40


class DiffOperator(str, Enum):
    TWO_DOT = ".."
    THREE_DOT = "..."


class DeltaStatus(str, Enum):
    """Raw per-path status reported by the commit graph provider."""

    ADDED = "added"
    COPIED = "copied"
    DELETED = "deleted"
    MODIFIED = "modified"
    RENAMED = "renamed"
    TYPECHANGE = "typechange"
    UNMODIFIED = "unmodified"
    UNTRACKED = "untracked"
    IGNORED = "ignored"
    UNREADABLE = "unreadable"
    CONFLICTED = "conflicted"

    @classmethod
    def from_git_letter(cls, letter: str) -> "DeltaStatus":
        # `git diff --raw` appends a similarity score to R and C (e.g. R087)
        return _GIT_LETTERS.get(letter[:1].upper(), cls.UNREADABLE)


_GIT_LETTERS = {
    "A": DeltaStatus.ADDED,
    "C": DeltaStatus.COPIED,
    "D": DeltaStatus.DELETED,
    "M": DeltaStatus.MODIFIED,
    "B": DeltaStatus.MODIFIED,
    "R": DeltaStatus.RENAMED,
    "T": DeltaStatus.TYPECHANGE,
    "U": DeltaStatus.CONFLICTED,
    "X": DeltaStatus.UNREADABLE,
}


class ChangeKind(str, Enum):
    ADDED = "A"
    COPIED = "C"
    MODIFIED = "M"
    DELETED = "D"
    RENAMED = "R"
    TYPE_CHANGED = "T"
    UNMERGED = "U"
    UNKNOWN = "X"


_COMMON_KINDS = {
    DeltaStatus.ADDED: ChangeKind.ADDED,
    DeltaStatus.COPIED: ChangeKind.COPIED,
    DeltaStatus.DELETED: ChangeKind.DELETED,
    DeltaStatus.MODIFIED: ChangeKind.MODIFIED,
    DeltaStatus.RENAMED: ChangeKind.RENAMED,
    DeltaStatus.TYPECHANGE: ChangeKind.TYPE_CHANGED,
    DeltaStatus.CONFLICTED: ChangeKind.UNMERGED,
}


def classify_for_detection(status: DeltaStatus) -> ChangeKind:
    """Kind of a delta seen without a filtering request.

    Untracked, ignored and unreadable entries count as additions here.
    """
    if status in _COMMON_KINDS:
        return _COMMON_KINDS[status]
    if status in (DeltaStatus.UNTRACKED, DeltaStatus.IGNORED, DeltaStatus.UNREADABLE):
        return ChangeKind.ADDED
    return ChangeKind.UNKNOWN


def classify_for_filter(status: DeltaStatus) -> ChangeKind:
    """Kind of a delta when matching it against a requested kind set.

    Unlike classify_for_detection, untracked, ignored and unreadable entries
    are reported as unknown. Both mappings are used; do not merge them.
    """
    return _COMMON_KINDS.get(status, ChangeKind.UNKNOWN)


ALL_KINDS: tuple[ChangeKind, ...] = tuple(ChangeKind)
ALL_CHANGED: tuple[ChangeKind, ...] = (
    ChangeKind.ADDED,
    ChangeKind.COPIED,
    ChangeKind.MODIFIED,
    ChangeKind.RENAMED,
)
ALL_MODIFIED: tuple[ChangeKind, ...] = ALL_CHANGED + (ChangeKind.DELETED,)

# output name -> kinds requested from the diff engine, in output order
KIND_SETS: dict[str, tuple[ChangeKind, ...]] = {
    "added_files": (ChangeKind.ADDED,),
    "copied_files": (ChangeKind.COPIED,),
    "deleted_files": (ChangeKind.DELETED,),
    "modified_files": (ChangeKind.MODIFIED,),
    "renamed_files": (ChangeKind.RENAMED,),
    "type_changed_files": (ChangeKind.TYPE_CHANGED,),
    "unmerged_files": (ChangeKind.UNMERGED,),
    "unknown_files": (ChangeKind.UNKNOWN,),
    "all_changed_and_modified_files": ALL_KINDS,
    "all_changed_files": ALL_CHANGED,
    "all_modified_files": ALL_MODIFIED,
}


@dataclass(frozen=True)
class Delta:
    status: DeltaStatus
    old_path: str
    new_path: str


@dataclass(frozen=True)
class DiffFile:
    path: str
    kind: ChangeKind
    previous_path: str | None = None


@dataclass(frozen=True)
class RangeContext:
    previous: str
    current: str
    operator: DiffOperator = DiffOperator.TWO_DOT
    initial_commit: bool = False

    def describe(self) -> str:
        return f"{self.previous}{self.operator.value}{self.current}"
