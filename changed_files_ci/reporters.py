from __future__ import annotations

import json
import posixpath
import uuid
from pathlib import Path
from typing import Mapping

from changed_files_ci.config import DiffSettings
from changed_files_ci.models import DiffFile


def dir_names(paths: list[str], max_depth: int | None = None, exclude_root: bool = False) -> list[str]:
    out: dict[str, None] = {}
    for path in paths:
        directory = posixpath.dirname(path) or "."
        if max_depth and max_depth > 0 and directory != ".":
            directory = "/".join(directory.split("/")[:max_depth])
        if exclude_root and directory == ".":
            continue
        out.setdefault(directory)
    return list(out)


def _format_list(values: list[str], settings: DiffSettings) -> str:
    if settings.json:
        return json.dumps(values)
    return settings.separator.join(values)


def _paths(files: list[DiffFile], settings: DiffSettings) -> list[str]:
    # submodule entries are relative to the submodule root, so a path that
    # also exists at the top level is reported once
    paths = list(dict.fromkeys(f.path for f in files))
    if settings.dir_names:
        return dir_names(paths, settings.dir_names_max_depth, settings.dir_names_exclude_root)
    return paths


def build_outputs(diffs: Mapping[str, list[DiffFile]], settings: DiffSettings) -> dict[str, str]:
    """Render each diff result as an output value, plus the any_* flags."""
    outputs: dict[str, str] = {}
    for name, files in diffs.items():
        outputs[name] = _format_list(_paths(files, settings), settings)

    def flag(name: str) -> str:
        return "true" if diffs.get(name) else "false"

    outputs["any_changed"] = flag("all_changed_files")
    outputs["any_modified"] = flag("all_modified_files")
    outputs["any_deleted"] = flag("deleted_files")

    if settings.include_all_old_new_renamed_files:
        pairs = [
            f"{f.previous_path}{settings.old_new_separator}{f.path}"
            for f in diffs.get("renamed_files", [])
        ]
        if settings.json:
            outputs["all_old_new_renamed_files"] = json.dumps(pairs)
        else:
            outputs["all_old_new_renamed_files"] = settings.old_new_files_separator.join(pairs)
    return outputs


def write_github_output(outputs: Mapping[str, str], path: Path) -> None:
    with path.open("a", encoding="utf-8") as fh:
        for key, value in outputs.items():
            if "\n" in value:
                delimiter = f"ghadelimiter_{uuid.uuid4()}"
                fh.write(f"{key}<<{delimiter}\n{value}\n{delimiter}\n")
            else:
                fh.write(f"{key}={value}\n")


def write_output_files(outputs: Mapping[str, str], directory: Path, as_json: bool = False) -> list[Path]:
    directory.mkdir(parents=True, exist_ok=True)
    written = []
    for key, value in outputs.items():
        is_flag = key.startswith("any_")
        target = directory / f"{key}.{'json' if as_json and not is_flag else 'txt'}"
        target.write_text(value)
        written.append(target)
    return written
