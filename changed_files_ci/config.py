from __future__ import annotations

from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping
import os
import yaml


DEFAULT_CONFIG_FILE = ".changed-files.yml"

# glob source -> the setting holding its separator
LIST_SETTINGS = {
    "files": "files_separator",
    "files_from_source_file": "files_from_source_file_separator",
    "files_ignore": "files_ignore_separator",
    "files_ignore_from_source_file": "files_ignore_from_source_file_separator",
}


@dataclass(frozen=True)
class DiffSettings:
    files: str = ""
    files_separator: str = "\n"
    files_from_source_file: str = ""
    files_from_source_file_separator: str = "\n"
    files_ignore: str = ""
    files_ignore_separator: str = "\n"
    files_ignore_from_source_file: str = ""
    files_ignore_from_source_file_separator: str = "\n"
    sha: str = ""
    base_sha: str = ""
    since: str = ""
    until: str = ""
    path: str = "."
    diff_relative: str = ""
    fetch_depth: int = 50
    since_last_remote_commit: bool = False
    separator: str = " "
    json: bool = False
    dir_names: bool = False
    dir_names_max_depth: int | None = None
    dir_names_exclude_root: bool = False
    include_all_old_new_renamed_files: bool = False
    old_new_separator: str = ","
    old_new_files_separator: str = " "
    write_output_files: bool = False
    output_dir: str = ".github/outputs"

    def with_overrides(self, **overrides: Any) -> "DiffSettings":
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})


@dataclass(frozen=True)
class CiContext:
    workspace: str = ""
    output: str = ""
    ref: str = ""
    ref_name: str = ""
    event_base_ref: str = ""
    head_repo_fork: bool = False
    pull_request_number: str = ""
    pull_request_base_ref: str = ""
    pull_request_head_ref: str = ""
    pull_request_base_sha: str = ""
    event_before: str = ""
    event_forced: bool = False
    runner_debug: bool = False

    @property
    def is_pull_request(self) -> bool:
        return bool(self.pull_request_base_ref)

    @property
    def is_tag(self) -> bool:
        return self.ref.startswith("refs/tags/")

    @property
    def source_branch(self) -> str:
        return self.event_base_ref.replace("refs/heads/", "") if self.is_tag else ""


def load_ci_context(environ: Mapping[str, str] | None = None) -> CiContext:
    env = os.environ if environ is None else environ

    def get(name: str) -> str:
        return (env.get(name) or "").strip()

    return CiContext(
        workspace=get("GITHUB_WORKSPACE"),
        output=get("GITHUB_OUTPUT"),
        ref=get("GITHUB_REF"),
        ref_name=get("GITHUB_REF_NAME") or get("GITHUB_REFNAME"),
        event_base_ref=get("GITHUB_EVENT_BASE_REF"),
        head_repo_fork=get("GITHUB_EVENT_HEAD_REPO_FORK").lower() == "true",
        pull_request_number=get("GITHUB_EVENT_PULL_REQUEST_NUMBER"),
        pull_request_base_ref=get("GITHUB_EVENT_PULL_REQUEST_BASE_REF"),
        pull_request_head_ref=get("GITHUB_EVENT_PULL_REQUEST_HEAD_REF"),
        pull_request_base_sha=get("GITHUB_EVENT_PULL_REQUEST_BASE_SHA"),
        event_before=get("GITHUB_EVENT_BEFORE"),
        event_forced=get("GITHUB_EVENT_FORCED").lower() == "true",
        runner_debug=get("RUNNER_DEBUG") == "1",
    )


def _coerce(name: str, value: Any, default: Any, data: Mapping[str, Any]) -> Any:
    if name in LIST_SETTINGS and isinstance(value, list):
        separator = data.get(LIST_SETTINGS[name], getattr(DiffSettings, LIST_SETTINGS[name]))
        return separator.join(str(x) for x in value)
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() == "true"
        return bool(value)
    if isinstance(default, int) or name == "dir_names_max_depth":
        try:
            return int(value) if value is not None else None
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Setting '{name}' must be an integer, got: {value}") from exc
    return "" if value is None else str(value)


def load_settings(path: str | Path | None) -> DiffSettings:
    if not path:
        return DiffSettings()

    settings_path = Path(path)
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {path}")

    data = yaml.safe_load(settings_path.read_text()) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a mapping: {path}")

    known = {f.name: f for f in fields(DiffSettings)}
    unknown = sorted(set(data) - set(known))
    if unknown:
        raise ValueError(f"Unknown setting(s) in {path}: {', '.join(unknown)}")

    defaults = DiffSettings()
    values = {
        name: _coerce(name, value, getattr(defaults, name), data)
        for name, value in data.items()
    }
    return replace(defaults, **values)
