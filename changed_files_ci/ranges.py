"""Resolution of the (previous, current) commit pair for push and pull request runs."""

from __future__ import annotations

from collections import Counter
from enum import Enum
import logging

from changed_files_ci.config import CiContext, DiffSettings
from changed_files_ci.git_repo import CommitGraph, GitError
from changed_files_ci.history import BRANCH_FETCH_ARGS, TAG_FETCH_ARGS, HistoryDeepener
from changed_files_ci.models import NULL_SHA, DiffOperator, RangeContext, classify_for_detection


logger = logging.getLogger(__name__)


class RangeErrorKind(str, Enum):
    NOT_FOUND = "not_found"
    EMPTY_RANGE = "empty_range"


class RangeError(RuntimeError):
    def __init__(self, kind: RangeErrorKind, message: str, exit_code: int = 1):
        super().__init__(message)
        self.kind = kind
        self.exit_code = exit_code


def _depth_hint(fetch_depth: int) -> str:
    return f"Please verify that both commits are valid, and increase the fetch_depth to a number higher than {fetch_depth}."


def _not_found(sha: str, fetch_depth: int) -> RangeError:
    return RangeError(
        RangeErrorKind.NOT_FOUND,
        f"The commit {sha or '<empty>'} doesn't exist in the repository. "
        f"Make sure that the commit SHA is correct. {_depth_hint(fetch_depth)}",
    )


def _same_commits(previous: str, current: str, fetch_depth: int) -> RangeError:
    return RangeError(
        RangeErrorKind.EMPTY_RANGE,
        f"Similar commit hashes detected: previous sha: {previous} is equivalent to the current sha: {current}. "
        + _depth_hint(fetch_depth),
    )


def _verify(graph: CommitGraph, sha: str, fetch_depth: int) -> str:
    try:
        return graph.find_commit(sha)
    except GitError as exc:
        raise _not_found(sha, fetch_depth) from exc


def resolve_current_commit(graph: CommitGraph, settings: DiffSettings) -> str:
    logger.debug("Getting HEAD SHA...")
    if settings.until:
        logger.debug("Getting HEAD SHA for '%s'...", settings.until)
        sha = graph.commit_at_or_before(settings.until)
        if not sha:
            raise RangeError(
                RangeErrorKind.NOT_FOUND,
                f"Unable to locate a commit at or before '{settings.until}'. {_depth_hint(settings.fetch_depth)}",
            )
    else:
        sha = settings.sha or "HEAD"

    logger.debug("Verifying the current commit SHA: %s", sha)
    return _verify(graph, sha, settings.fetch_depth)


def _previous_for_branch_push(
    graph: CommitGraph,
    settings: DiffSettings,
    ci: CiContext,
    current: str,
) -> tuple[str, bool]:
    parent = graph.parent(current)
    previous = parent or ""

    if settings.since_last_remote_commit and not ci.event_forced:
        previous = ci.event_before

    # new branches report an all-zero "before" sha
    if not previous or previous == NULL_SHA:
        previous = parent or current

    if graph.has_commit(previous):
        previous = graph.find_commit(previous)

    if previous == current:
        step_back = graph.parent(previous)
        if not step_back:
            logger.warning("Initial commit detected no previous commit found.")
            return current, True
        previous = step_back

    return previous, False


def resolve_push_range(
    graph: CommitGraph,
    settings: DiffSettings,
    ci: CiContext,
    deepener: HistoryDeepener | None = None,
) -> RangeContext:
    """Resolve the commits to compare for a push. Push ranges are always two-dot."""
    logger.info("Running on a push event...")
    current_branch = ci.ref_name
    target_branch = current_branch

    if graph.is_shallow():
        extra_args = TAG_FETCH_ARGS if ci.is_tag else BRANCH_FETCH_ARGS
        deepener = deepener or HistoryDeepener(graph, settings.fetch_depth, extra_args)
        logger.info("Fetching remote refs...")
        logger.debug("extra_args: %s", " ".join(deepener.extra_args))
        deepener.deepen_branch(ci.source_branch if ci.is_tag else current_branch)
        if graph.submodules():
            deepener.deepen_submodules()

    current = resolve_current_commit(graph, settings)

    initial_commit = False
    if settings.base_sha:
        previous = settings.base_sha
        if ci.is_tag:
            target_branch = graph.describe_tag(previous)
    elif settings.since:
        logger.debug("Getting base SHA for '%s'...", settings.since)
        since_shas = graph.commits_since(settings.since)
        previous = since_shas[-1] if since_shas else ""
    elif ci.is_tag:
        tags = graph.tags_by_version_desc()
        if len(tags) < 2:
            raise RangeError(RangeErrorKind.NOT_FOUND, "Could not get second latest tag.")
        previous = tags[1]
    else:
        previous, initial_commit = _previous_for_branch_push(graph, settings, ci, current)

    if not previous:
        raise RangeError(RangeErrorKind.NOT_FOUND, "Unable to locate a previous commit.")

    logger.debug("Target branch %s...", target_branch)
    logger.debug("Current branch %s...", current_branch)
    logger.debug("Verifying the previous commit SHA: %s", previous)
    previous = _verify(graph, previous, settings.fetch_depth)

    if previous == current and not initial_commit:
        raise _same_commits(previous, current, settings.fetch_depth)

    return RangeContext(
        previous=previous,
        current=current,
        operator=DiffOperator.TWO_DOT,
        initial_commit=initial_commit,
    )


def _remote_branch_tip(graph: CommitGraph, branch: str) -> str:
    if not branch:
        return ""
    try:
        return graph.find_commit(f"origin/{branch}")
    except GitError:
        logger.debug("origin/%s is not available locally", branch)
        return ""


def resolve_pull_request_range(
    graph: CommitGraph,
    settings: DiffSettings,
    ci: CiContext,
    deepener: HistoryDeepener | None = None,
) -> RangeContext:
    """Resolve the commits and diff operator for a pull request.

    Three-dot is the default. Forks, a missing base ref and a merge base
    that stays out of reach after deepening all force two-dot.
    """
    logger.info("Running on a pull request event...")
    base_ref = ci.pull_request_base_ref
    head_ref = ci.pull_request_head_ref

    shallow = graph.is_shallow()
    deepener = deepener or HistoryDeepener(graph, settings.fetch_depth)
    if shallow:
        logger.info("Fetching remote refs...")
        deepener.fetch_pull_request_head(ci.pull_request_number, head_ref)
        if settings.since_last_remote_commit:
            deepener.fetch_and_track(base_ref)
        if graph.submodules():
            deepener.deepen_submodules()

    if settings.since:
        logger.debug("'since' is ignored for pull request events")

    current = resolve_current_commit(graph, settings)
    logger.debug("Current SHA: %s", current)

    operator = DiffOperator.THREE_DOT
    if not base_ref or ci.head_repo_fork:
        operator = DiffOperator.TWO_DOT

    if settings.base_sha:
        previous = settings.base_sha
    else:
        if settings.since_last_remote_commit:
            previous = ci.event_before
            if not graph.has_commit(previous):
                previous = ci.pull_request_base_sha
        else:
            previous = _remote_branch_tip(graph, base_ref)
            if shallow and previous:
                deepener.deepen_until_merge_base(previous, current, base_ref)

        if not previous or previous == current:
            previous = ci.pull_request_base_sha
        logger.debug("Previous SHA: %s", previous)

    if graph.merge_base(previous, current):
        logger.debug("Merge base is in the local history")
    else:
        logger.debug("Merge base is not in the local history, setting diff to ..")
        operator = DiffOperator.TWO_DOT

    logger.debug("Target branch: %s", base_ref)
    logger.debug("Current branch: %s", head_ref)
    logger.debug("Verifying the previous commit SHA: %s", previous)
    previous = _verify(graph, previous, settings.fetch_depth)

    context = RangeContext(previous=previous, current=current, operator=operator)
    logger.debug("Verifying the difference between %s", context.describe())

    ancestor = previous
    if operator is DiffOperator.THREE_DOT:
        ancestor = graph.merge_base(previous, current) or previous
    # whole tree, regardless of diff_relative
    deltas = graph.diff_trees(ancestor, current, relative=False)
    if not deltas:
        raise RangeError(
            RangeErrorKind.EMPTY_RANGE,
            f"Unable to determine a difference between {context.describe()}",
        )
    logger.debug(
        "Changes by kind: %s",
        dict(Counter(classify_for_detection(d.status).value for d in deltas)),
    )

    if previous == current:
        raise _same_commits(previous, current, settings.fetch_depth)

    return context
