from __future__ import annotations

from pathlib import Path
import logging
import typer

from changed_files_ci.config import DEFAULT_CONFIG_FILE, load_ci_context, load_settings
from changed_files_ci.diff_engine import get_diffs
from changed_files_ci.git_repo import MIN_GIT_VERSION, GitError, git_version, open_repository, version_number
from changed_files_ci.globs import build_glob_filter
from changed_files_ci.logging_config import group, setup_logging
from changed_files_ci.models import KIND_SETS
from changed_files_ci.ranges import RangeError, resolve_pull_request_range, resolve_push_range
from changed_files_ci.reporters import build_outputs, write_github_output, write_output_files

app = typer.Typer(help="changed-files-ci: list the files changed by a push or pull request")

logger = logging.getLogger(__name__)


@app.callback()
def main() -> None:
    """changed-files-ci command group."""


def _fail(message: str, code: int) -> typer.Exit:
    logger.error(message)
    return typer.Exit(code=code)


@app.command()
def diff(
    path: str | None = typer.Option(None, help="Relative path under $GITHUB_WORKSPACE to locate the repository"),
    config: str | None = typer.Option(None, help=f"Settings YAML path (defaults to {DEFAULT_CONFIG_FILE} in the repository)"),
    files: str | None = typer.Option(None, help="File and directory patterns to detect changes for"),
    files_separator: str | None = typer.Option(None, help="Separator used to split --files"),
    files_from_source_file: str | None = typer.Option(None, help="Source file(s) used to populate --files"),
    files_from_source_file_separator: str | None = typer.Option(None, help="Separator used to split --files-from-source-file"),
    files_ignore: str | None = typer.Option(None, help="Ignore changes to these file patterns"),
    files_ignore_separator: str | None = typer.Option(None, help="Separator used to split --files-ignore"),
    files_ignore_from_source_file: str | None = typer.Option(None, help="Source file(s) used to populate --files-ignore"),
    files_ignore_from_source_file_separator: str | None = typer.Option(
        None, help="Separator used to split --files-ignore-from-source-file"
    ),
    sha: str | None = typer.Option(None, help="Commit SHA used as the current commit"),
    base_sha: str | None = typer.Option(None, help="Commit SHA used as the previous commit"),
    since: str | None = typer.Option(None, help="Compare against the oldest commit more recent than this time"),
    until: str | None = typer.Option(None, help="Use the latest commit older than this time as the current commit"),
    diff_relative: str | None = typer.Option(None, help="Only report changes under this directory, relative to it"),
    fetch_depth: int | None = typer.Option(None, help="Depth of additional history fetched for shallow clones"),
    since_last_remote_commit: bool | None = typer.Option(
        None, "--since-last-remote-commit/--no-since-last-remote-commit", help="Compare against the last remote commit"
    ),
    separator: str | None = typer.Option(None, help="Separator for output lists"),
    json_output: bool | None = typer.Option(None, "--json/--no-json", help="Output lists as JSON"),
    dir_names: bool | None = typer.Option(None, "--dir-names/--no-dir-names", help="Output changed directories"),
    dir_names_max_depth: int | None = typer.Option(None, help="Maximum depth of output directories"),
    dir_names_exclude_root: bool | None = typer.Option(
        None, "--dir-names-exclude-root/--no-dir-names-exclude-root", help="Leave '.' out of directory output"
    ),
    include_all_old_new_renamed_files: bool | None = typer.Option(
        None,
        "--include-all-old-new-renamed-files/--no-include-all-old-new-renamed-files",
        help="Add the all_old_new_renamed_files output",
    ),
    old_new_separator: str | None = typer.Option(None, help="Separator between old and new renamed paths"),
    old_new_files_separator: str | None = typer.Option(None, help="Separator between renamed path pairs"),
    write_files: bool | None = typer.Option(
        None, "--write-output-files/--no-write-output-files", help="Write each output to a file"
    ),
    output_dir: str | None = typer.Option(None, help="Directory for output files"),
    verbose: bool = typer.Option(False, "--verbose", help="Emit debug annotations"),
) -> None:
    ci = load_ci_context()
    setup_logging(verbose=verbose or ci.runner_debug)

    with group("changed-files-diff-sha"):
        try:
            version = git_version()
        except GitError as exc:
            raise _fail(str(exc), 1)
        if version_number(version) < version_number(MIN_GIT_VERSION):
            raise _fail(f"Invalid git version. Please upgrade ({version}) to >= ({MIN_GIT_VERSION})", 1)
        logger.info("Valid git version found: (%s)", version)

        workspace = Path(ci.workspace or ".")
        config_path: Path | None = Path(config) if config else None
        if config_path is None and (workspace / (path or ".") / DEFAULT_CONFIG_FILE).exists():
            config_path = workspace / (path or ".") / DEFAULT_CONFIG_FILE

        try:
            settings = load_settings(config_path)
        except (OSError, ValueError) as exc:
            raise _fail(f"Invalid settings file: {exc}", 2)

        settings = settings.with_overrides(
            path=path,
            files=files,
            files_separator=files_separator,
            files_from_source_file=files_from_source_file,
            files_from_source_file_separator=files_from_source_file_separator,
            files_ignore=files_ignore,
            files_ignore_separator=files_ignore_separator,
            files_ignore_from_source_file=files_ignore_from_source_file,
            files_ignore_from_source_file_separator=files_ignore_from_source_file_separator,
            sha=sha,
            base_sha=base_sha,
            since=since,
            until=until,
            diff_relative=diff_relative,
            fetch_depth=fetch_depth,
            since_last_remote_commit=since_last_remote_commit,
            separator=separator,
            json=json_output,
            dir_names=dir_names,
            dir_names_max_depth=dir_names_max_depth,
            dir_names_exclude_root=dir_names_exclude_root,
            include_all_old_new_renamed_files=include_all_old_new_renamed_files,
            old_new_separator=old_new_separator,
            old_new_files_separator=old_new_files_separator,
            write_output_files=write_files,
            output_dir=output_dir,
        )

        root = (workspace / settings.path).resolve()
        logger.debug("Resolving repository path: %s", root)
        try:
            repo = open_repository(root, diff_relative=settings.diff_relative)
            logger.debug("is_shallow_clone: %s", repo.is_shallow())

            if ci.is_pull_request:
                context = resolve_pull_request_range(repo, settings, ci)
            else:
                if ci.is_tag:
                    logger.debug("is_tag: true, source_branch: %s", ci.source_branch)
                context = resolve_push_range(repo, settings, ci)

            if context.initial_commit:
                typer.echo("Initial commit detected, skipping...")
                return

            glob_filter = build_glob_filter(
                files=settings.files,
                files_separator=settings.files_separator,
                files_from_source_file=settings.files_from_source_file,
                files_from_source_file_separator=settings.files_from_source_file_separator,
                files_ignore=settings.files_ignore,
                files_ignore_separator=settings.files_ignore_separator,
                files_ignore_from_source_file=settings.files_ignore_from_source_file,
                files_ignore_from_source_file_separator=settings.files_ignore_from_source_file_separator,
                path=root,
            )
            diffs = get_diffs(repo, context, KIND_SETS, glob_filter)
        except RangeError as exc:
            raise _fail(str(exc), exc.exit_code)
        except GitError as exc:
            raise _fail(str(exc), 1)

        outputs = build_outputs(diffs, settings)
        if ci.output:
            write_github_output(outputs, Path(ci.output))
        if settings.write_output_files:
            written = write_output_files(outputs, root / settings.output_dir, as_json=settings.json)
            typer.echo(f"Wrote {len(written)} output files to {root / settings.output_dir}")

        counts = " ".join(f"{name}={len(files)}" for name, files in diffs.items())
        typer.echo(f"Compared {context.describe()}: {counts}")


if __name__ == "__main__":
    app()
