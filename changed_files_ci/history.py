from __future__ import annotations

import logging

from changed_files_ci.git_repo import CommitGraph


logger = logging.getLogger(__name__)

MAX_MERGE_BASE_ATTEMPTS = 10

BRANCH_FETCH_ARGS = ("--no-tags", "--prune", "--recurse-submodules")
TAG_FETCH_ARGS = ("--prune", "--no-recurse-submodules")


def branch_refspec(branch: str, remote: str = "origin") -> str:
    return f"+refs/heads/{branch}:refs/remotes/{remote}/{branch}"


class HistoryDeepener:
    """Pulls more history from the remote of a shallow clone.

    Fetch failures are logged and swallowed; callers notice the missing
    history later when a commit or merge base cannot be resolved.
    """

    def __init__(
        self,
        graph: CommitGraph,
        fetch_depth: int,
        extra_args: tuple[str, ...] = BRANCH_FETCH_ARGS,
        remote: str = "origin",
    ):
        self.graph = graph
        self.fetch_depth = fetch_depth
        self.extra_args = extra_args
        self.remote = remote

    def deepen_branch(self, branch: str) -> bool:
        refspecs = [branch_refspec(branch, self.remote)] if branch else []
        status = self.graph.fetch(refspecs, depth=self.fetch_depth, extra_args=self.extra_args, remote=self.remote)
        if status != 0:
            logger.debug("Deepening '%s' failed with exit status %d", branch or self.remote, status)
        return status == 0

    def deepen_submodules(self) -> None:
        for path in self.graph.submodules():
            submodule = self.graph.open_submodule(path)
            status = submodule.fetch(depth=self.fetch_depth, extra_args=self.extra_args, remote=None)
            if status != 0:
                logger.debug("Deepening submodule '%s' failed with exit status %d", path, status)

    def fetch_pull_request_head(self, number: str, head_ref: str) -> bool:
        """Fetch the pull request head into a local ref, falling back to the head branch."""
        status = self.graph.fetch(
            [f"pull/{number}/head:{head_ref}"],
            extra_args=self.extra_args,
            remote=self.remote,
        )
        if status == 0:
            logger.info("First fetch succeeded")
            return True

        logger.info("First fetch failed, falling back to second fetch")
        self.graph.fetch(
            [f"+refs/heads/{head_ref}*:refs/remotes/{self.remote}/{head_ref}*"],
            depth=self.fetch_depth,
            extra_args=self.extra_args,
            remote=self.remote,
        )
        return False

    def fetch_and_track(self, branch: str) -> None:
        logger.debug("Fetching remote target branch...")
        self.deepen_branch(branch)
        if self.graph.track_branch(branch, remote=self.remote) != 0:
            logger.debug("Tracking branch for '%s' not created", branch)

    def deepen_until_merge_base(
        self,
        previous: str,
        current: str,
        branch: str,
        max_attempts: int = MAX_MERGE_BASE_ATTEMPTS,
    ) -> str | None:
        base = self.graph.merge_base(previous, current)
        if base:
            logger.debug("Merge base is in the local history")
            return base

        logger.debug("Merge base is not in the local history, fetching remote target branch...")
        for attempt in range(1, max_attempts + 1):
            self.graph.fetch(
                [branch_refspec(branch, self.remote)],
                depth=self.fetch_depth,
                remote=self.remote,
            )
            base = self.graph.merge_base(previous, current)
            if base:
                return base
            logger.debug("Merge base is not in the local history, attempt %d/%d", attempt, max_attempts)
        return None
