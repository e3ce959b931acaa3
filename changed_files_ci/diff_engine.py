from __future__ import annotations

from typing import Iterable, Mapping
import logging

from changed_files_ci.git_repo import CommitGraph
from changed_files_ci.globs import GlobFilter
from changed_files_ci.models import ChangeKind, DiffFile, DiffOperator, RangeContext, classify_for_filter


logger = logging.getLogger(__name__)


def ancestor_commit(graph: CommitGraph, context: RangeContext) -> str:
    if context.operator is DiffOperator.TWO_DOT:
        return context.previous

    base = graph.merge_base(context.previous, context.current)
    if base is None:
        logger.warning(
            "No merge base between %s and %s in %s, comparing the commits directly",
            context.previous,
            context.current,
            graph.path,
        )
        return context.previous
    return base


def _submodule_context(
    graph: CommitGraph,
    submodule: CommitGraph,
    path: str,
    context: RangeContext,
) -> RangeContext | None:
    previous = graph.gitlink(context.previous, path)
    current = graph.gitlink(context.current, path)
    if not previous or not current:
        logger.debug("Submodule %s is not present on both sides of %s, skipping", path, context.describe())
        return None
    if previous == current:
        return None

    for sha in (previous, current):
        if not submodule.has_commit(sha):
            logger.warning("Submodule %s does not contain commit %s locally, skipping", path, sha)
            return None
    return RangeContext(previous=previous, current=current, operator=context.operator)


def get_diff(
    graph: CommitGraph,
    context: RangeContext,
    kinds: Iterable[ChangeKind],
    glob_filter: GlobFilter | None = None,
) -> list[DiffFile]:
    """List the changes of the requested kinds between the two commits.

    Top level changes come first, in the provider's order, followed by the
    changes inside each submodule whose pinned commit moved. Submodule paths
    are relative to the submodule root.
    """
    wanted = frozenset(kinds)
    if not wanted:
        raise ValueError("At least one change kind must be requested")
    glob_filter = glob_filter or GlobFilter()

    ancestor = ancestor_commit(graph, context)
    files: list[DiffFile] = []
    for delta in graph.diff_trees(ancestor, context.current, ignore_submodules=True):
        kind = classify_for_filter(delta.status)
        if kind not in wanted or not glob_filter.matches(delta.new_path):
            continue
        files.append(DiffFile(path=delta.new_path, kind=kind, previous_path=delta.old_path))

    for path in graph.submodules():
        submodule = graph.open_submodule(path)
        sub_context = _submodule_context(graph, submodule, path, context)
        if sub_context is None:
            continue
        files.extend(get_diff(submodule, sub_context, wanted, glob_filter))

    return files


def get_diffs(
    graph: CommitGraph,
    context: RangeContext,
    kind_sets: Mapping[str, Iterable[ChangeKind]],
    glob_filter: GlobFilter | None = None,
) -> dict[str, list[DiffFile]]:
    return {
        name: get_diff(graph, context, kinds, glob_filter)
        for name, kinds in kind_sets.items()
    }
