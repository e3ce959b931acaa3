from __future__ import annotations

from pathlib import Path
from typing import Iterable, Protocol
import logging
import subprocess

from changed_files_ci.models import Delta, DeltaStatus


logger = logging.getLogger(__name__)

MIN_GIT_VERSION = "2.18.0"


class GitError(RuntimeError):
    pass


class CommitGraph(Protocol):
    """Read access to a repository's history, plus the fetches that extend it.

    Commits are passed around as full hex object ids.
    """

    path: Path

    def is_shallow(self) -> bool: ...

    def find_commit(self, rev: str) -> str: ...

    def has_commit(self, rev: str) -> bool: ...

    def parent(self, sha: str, n: int = 0) -> str | None: ...

    def merge_base(self, a: str, b: str) -> str | None: ...

    def diff_trees(
        self, old: str, new: str, ignore_submodules: bool = True, relative: bool = True
    ) -> list[Delta]: ...

    def submodules(self) -> list[str]: ...

    def gitlink(self, commit: str, path: str) -> str | None: ...

    def open_submodule(self, path: str) -> "CommitGraph": ...

    def commit_at_or_before(self, timestamp: str) -> str | None: ...

    def commits_since(self, timestamp: str) -> list[str]: ...

    def tags_by_version_desc(self) -> list[str]: ...

    def describe_tag(self, sha: str) -> str: ...

    def fetch(
        self,
        refspecs: Iterable[str] = (),
        depth: int | None = None,
        extra_args: Iterable[str] = (),
        remote: str | None = "origin",
    ) -> int: ...

    def track_branch(self, branch: str, remote: str = "origin") -> int: ...


def _run_git(cwd: Path, args: list[str], check: bool = True) -> subprocess.CompletedProcess[str]:
    cmd = ["git", "-c", "core.quotepath=off", *args]
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            capture_output=True,
            text=True,
            encoding="utf-8",
            errors="replace",
            check=False,
        )
    except FileNotFoundError as exc:
        raise GitError("git is not installed or not available in PATH") from exc

    if check and proc.returncode != 0:
        stderr = (proc.stderr or "").strip()
        raise GitError(f"git {' '.join(args)} failed. {stderr or 'Check git history and ref availability.'}")
    return proc


def _lines(text: str | None) -> list[str]:
    return [line.strip() for line in (text or "").splitlines() if line.strip()]


def parse_raw_diff(output: str) -> list[Delta]:
    """Parse `git diff --raw -z` output into deltas, keeping git's order."""
    tokens = output.split("\0")
    deltas: list[Delta] = []
    i = 0
    while i < len(tokens):
        meta = tokens[i]
        i += 1
        if not meta.startswith(":"):
            continue
        letters = meta.split()[-1]
        status = DeltaStatus.from_git_letter(letters)
        if letters[:1] in ("R", "C"):
            old_path, new_path = tokens[i], tokens[i + 1]
            i += 2
        else:
            old_path = new_path = tokens[i]
            i += 1
        deltas.append(Delta(status=status, old_path=old_path, new_path=new_path))
    return deltas


def parse_ls_tree_gitlink(output: str) -> str | None:
    # <mode> SP <type> SP <object> TAB <path>
    for line in _lines(output):
        meta, _, _path = line.partition("\t")
        fields = meta.split()
        if len(fields) == 3 and fields[1] == "commit":
            return fields[2]
    return None


class GitRepository:
    """CommitGraph backed by the git executable."""

    def __init__(self, path: Path, diff_relative: str | None = None):
        self.path = Path(path)
        self.diff_relative = diff_relative or None

    def __repr__(self) -> str:
        return f"GitRepository({str(self.path)!r})"

    def _git(self, *args: str, check: bool = True) -> subprocess.CompletedProcess[str]:
        return _run_git(self.path, list(args), check=check)

    def is_shallow(self) -> bool:
        return self._git("rev-parse", "--is-shallow-repository").stdout.strip() == "true"

    def find_commit(self, rev: str) -> str:
        rev = rev.strip()
        if not rev:
            raise GitError("Empty commit reference")
        proc = self._git("rev-parse", "--verify", "--quiet", f"{rev}^{{commit}}", check=False)
        sha = proc.stdout.strip()
        if proc.returncode != 0 or not sha:
            raise GitError(f"The commit {rev} doesn't exist in the repository.")
        return sha

    def has_commit(self, rev: str) -> bool:
        try:
            self.find_commit(rev)
        except GitError:
            return False
        return True

    def parent(self, sha: str, n: int = 0) -> str | None:
        proc = self._git("rev-parse", "--verify", "--quiet", f"{sha}^{n + 1}", check=False)
        if proc.returncode != 0:
            return None
        return proc.stdout.strip() or None

    def merge_base(self, a: str, b: str) -> str | None:
        if not a or not b:
            return None
        proc = self._git("merge-base", a, b, check=False)
        if proc.returncode != 0:
            return None
        return proc.stdout.strip() or None

    def diff_trees(
        self, old: str, new: str, ignore_submodules: bool = True, relative: bool = True
    ) -> list[Delta]:
        args = ["diff", "--raw", "-z", "-M", "--no-abbrev", "--no-ext-diff", "--no-color"]
        if ignore_submodules:
            args.append("--ignore-submodules=all")
        if relative and self.diff_relative:
            args.append(f"--relative={self.diff_relative}")
        args.extend([old, new, "--"])
        return parse_raw_diff(self._git(*args).stdout)

    def submodules(self) -> list[str]:
        if not (self.path / ".gitmodules").is_file():
            return []
        proc = self._git(
            "config", "--file", ".gitmodules", "--get-regexp", r"^submodule\..*\.path$", check=False
        )
        paths = []
        for line in _lines(proc.stdout):
            _key, _, value = line.partition(" ")
            if value:
                paths.append(value.strip())
        return paths

    def gitlink(self, commit: str, path: str) -> str | None:
        proc = self._git("ls-tree", commit, "--", path, check=False)
        if proc.returncode != 0:
            return None
        return parse_ls_tree_gitlink(proc.stdout)

    def open_submodule(self, path: str) -> "GitRepository":
        return GitRepository(self.path / path)

    def commit_at_or_before(self, timestamp: str) -> str | None:
        proc = self._git("log", "-1", "--format=%H", "--date=local", f"--until={timestamp}")
        out = proc.stdout.strip()
        return out or None

    def commits_since(self, timestamp: str) -> list[str]:
        proc = self._git("log", "--format=%H", "--date=local", f"--since={timestamp}")
        return _lines(proc.stdout)

    def tags_by_version_desc(self) -> list[str]:
        return _lines(self._git("tag", "--sort=-v:refname").stdout)

    def describe_tag(self, sha: str) -> str:
        return self._git("describe", "--tags", sha, check=False).stdout.strip()

    def fetch(
        self,
        refspecs: Iterable[str] = (),
        depth: int | None = None,
        extra_args: Iterable[str] = (),
        remote: str | None = "origin",
    ) -> int:
        args = ["fetch", *extra_args, "-u", "--progress"]
        if depth:
            args.append(f"--deepen={depth}")
        if remote:
            args.append(remote)
        args.extend(refspecs)

        proc = self._git(*args, check=False)
        if proc.returncode != 0:
            logger.debug("git %s exited with %d: %s", " ".join(args), proc.returncode, (proc.stderr or "").strip())
        return proc.returncode

    def track_branch(self, branch: str, remote: str = "origin") -> int:
        return self._git("branch", "--track", branch, f"{remote}/{branch}", check=False).returncode


def open_repository(path: Path, diff_relative: str | None = None) -> GitRepository:
    if not path.exists():
        raise GitError(f"Invalid repository path: {path}")
    proc = _run_git(path, ["rev-parse", "--show-toplevel"], check=False)
    if proc.returncode != 0:
        raise GitError(f"Invalid repository path: {path}. {(proc.stderr or '').strip()}")
    repo = GitRepository(Path(proc.stdout.strip()), diff_relative=diff_relative)
    logger.debug("Repository found: %s", repo.path)
    return repo


def version_number(version: str) -> int:
    number = 0
    for i, part in enumerate(version.split(".")[:4]):
        try:
            value = int(part)
        except ValueError:
            value = 0
        number += value * 1000 ** (3 - i)
    return number


def git_version() -> str:
    proc = _run_git(Path.cwd(), ["--version"])
    fields = proc.stdout.split()
    return fields[2] if len(fields) > 2 else ""
