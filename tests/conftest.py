from __future__ import annotations

import logging
import os
import shutil
import subprocess
from pathlib import Path
from typing import Callable

import pytest

from changed_files_ci.git_repo import GitError
from changed_files_ci.models import Delta, DeltaStatus


class FakeGraph:
    """In-memory commit graph.

    Commits map to parent lists and flat file trees; gitlinks are kept apart
    from files so tree diffs ignore them like `--ignore-submodules` does.
    """

    def __init__(self, path: str = "repo"):
        self.path = Path(path)
        self.parents: dict[str, list[str]] = {}
        self.files: dict[str, dict[str, str]] = {}
        self.links: dict[str, dict[str, str]] = {}
        self.refs: dict[str, str] = {}
        self.shallow = False
        self.deltas: dict[tuple[str, str], list[Delta]] = {}
        self.subgraphs: dict[str, FakeGraph] = {}
        self.tags: list[str] = []
        self.until: dict[str, str] = {}
        self.since: dict[str, list[str]] = {}
        self.fetch_calls: list[dict] = []
        self.fetch_results: list[int] = []
        self.on_fetch: Callable[["FakeGraph"], None] | None = None
        self.tracked: list[str] = []
        self.diff_calls: list[tuple[str, str]] = []

    def commit(self, sha: str, parents=(), files=None, links=None) -> str:
        self.parents[sha] = list(parents)
        self.files[sha] = dict(files or {})
        self.links[sha] = dict(links or {})
        self.refs["HEAD"] = sha
        return sha

    def is_shallow(self) -> bool:
        return self.shallow

    def find_commit(self, rev: str) -> str:
        sha = self.refs.get(rev, rev)
        if not sha or sha not in self.parents:
            raise GitError(f"The commit {rev} doesn't exist in the repository.")
        return sha

    def has_commit(self, rev: str) -> bool:
        try:
            self.find_commit(rev)
        except GitError:
            return False
        return True

    def parent(self, sha: str, n: int = 0) -> str | None:
        parents = [p for p in self.parents.get(sha, []) if p in self.parents]
        return parents[n] if n < len(parents) else None

    def _ancestors(self, sha: str) -> list[str]:
        seen: list[str] = []
        queue = [sha]
        while queue:
            current = queue.pop(0)
            if current in seen or current not in self.parents:
                continue
            seen.append(current)
            queue.extend(self.parents[current])
        return seen

    def merge_base(self, a: str, b: str) -> str | None:
        if a not in self.parents or b not in self.parents:
            return None
        ours = set(self._ancestors(a))
        for candidate in self._ancestors(b):
            if candidate in ours:
                return candidate
        return None

    def diff_trees(
        self, old: str, new: str, ignore_submodules: bool = True, relative: bool = True
    ) -> list[Delta]:
        self.diff_calls.append((old, new))
        if (old, new) in self.deltas:
            return list(self.deltas[(old, new)])
        before, after = self.files[old], self.files[new]
        out = []
        for path in sorted(set(before) | set(after)):
            if path not in before:
                out.append(Delta(DeltaStatus.ADDED, path, path))
            elif path not in after:
                out.append(Delta(DeltaStatus.DELETED, path, path))
            elif before[path] != after[path]:
                out.append(Delta(DeltaStatus.MODIFIED, path, path))
        return out

    def submodules(self) -> list[str]:
        return list(self.subgraphs)

    def gitlink(self, commit: str, path: str) -> str | None:
        return self.links.get(commit, {}).get(path)

    def open_submodule(self, path: str) -> "FakeGraph":
        return self.subgraphs[path]

    def commit_at_or_before(self, timestamp: str) -> str | None:
        return self.until.get(timestamp)

    def commits_since(self, timestamp: str) -> list[str]:
        return list(self.since.get(timestamp, []))

    def tags_by_version_desc(self) -> list[str]:
        return list(self.tags)

    def describe_tag(self, sha: str) -> str:
        return self.tags[-1] if self.tags else ""

    def fetch(self, refspecs=(), depth=None, extra_args=(), remote="origin") -> int:
        self.fetch_calls.append(
            {"refspecs": list(refspecs), "depth": depth, "extra_args": tuple(extra_args), "remote": remote}
        )
        if self.on_fetch:
            self.on_fetch(self)
        return self.fetch_results.pop(0) if self.fetch_results else 0

    def track_branch(self, branch: str, remote: str = "origin") -> int:
        self.tracked.append(branch)
        return 0


@pytest.fixture
def graph() -> FakeGraph:
    return FakeGraph()


@pytest.fixture
def make_graph() -> Callable[..., FakeGraph]:
    return FakeGraph


@pytest.fixture(autouse=True)
def _reset_package_logger():
    yield
    logger = logging.getLogger("changed_files_ci")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.propagate = True
    logger.setLevel(logging.NOTSET)


GIT_ENV = {
    "GIT_AUTHOR_NAME": "Test",
    "GIT_AUTHOR_EMAIL": "test@example.com",
    "GIT_COMMITTER_NAME": "Test",
    "GIT_COMMITTER_EMAIL": "test@example.com",
    "GIT_CONFIG_NOSYSTEM": "1",
}


def _run_git(repo: Path, *args: str) -> str:
    env = {**os.environ, **GIT_ENV}
    proc = subprocess.run(
        ["git", "-c", "commit.gpgsign=false", "-c", "init.defaultBranch=main", *args],
        cwd=str(repo),
        capture_output=True,
        text=True,
        check=True,
        env=env,
    )
    return proc.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    _run_git(repo, "init", "-q")
    _run_git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    return repo


def _commit_all(repo: Path, message: str) -> str:
    _run_git(repo, "add", "-A")
    _run_git(repo, "commit", "-q", "-m", message)
    return _run_git(repo, "rev-parse", "HEAD")


@pytest.fixture
def run_git():
    return _run_git


@pytest.fixture
def commit_all():
    return _commit_all
