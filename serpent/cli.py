#!/usr/bin/env python3
"""
serpent CLI - Command-line interface for the serpent transpiler.

This module provides the entry point for the 'serpent' command installed via pip.

Usage:
    serpent transpile script.py                 # Print the Rust translation
    serpent tp script.py -o script.rs           # Save it to a file
    serpent tp package/ -o crate/ --emit-manifest
    serpent steps script.py -l 12               # Show the stages of line 12
"""

import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Iterable, Optional

import click

from serpent.src.common.constants import DEFAULT_CONFIG, CompilerConfig
from serpent.src.common.exceptions import TranspileError
from serpent.src.common.remap import RemapConfig, detect_remap_file, load_remap
from serpent.src.emission.formatting import add_line_numbers
from serpent.src.manifest.builder import ManifestBuilder
from serpent.src.pipeline.driver import (
    transpile_file,
    transpile_module,
    write_module_output,
    write_text,
)
from serpent.src.pipeline.steps import StepInspector

logger = logging.getLogger(__name__)

FILE_OR_DIRECTORY_NOT_FOUND = "FileOrDirectoryNotFound"
PATH_IS_DIRECTORY = "PathIsDirectory"
PATH_IS_FILE = "PathIsFile"
REDUNDANT_PARAMETER = "RedundantParameter"

_CLI_ERROR_MESSAGES = {
    FILE_OR_DIRECTORY_NOT_FOUND: "file or directory not found for '{subject}'",
    PATH_IS_DIRECTORY: "'{subject}' is not a file",
    PATH_IS_FILE: "'{subject}' is not a directory",
    REDUNDANT_PARAMETER: "redundant parameter: {subject}",
}


class CliError(click.ClickException):
    """A problem with the command line itself, reported before transpiling."""

    def __init__(self, kind: str, subject: str) -> None:
        if kind not in _CLI_ERROR_MESSAGES:
            raise ValueError(f"Unknown CLI error kind: {kind!r}")
        self.kind = kind
        self.subject = subject
        super().__init__(_CLI_ERROR_MESSAGES[kind].format(subject=subject))

    def show(self, file=None) -> None:
        click.echo(f"error: {self.format_message()}", err=True, file=file)


def setup_logging(level: str) -> None:
    """Setup logging configuration."""
    numeric_level = getattr(logging, level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level}")
    logging.basicConfig(level=numeric_level, format="%(levelname)s: %(message)s")


def log_level_for(verbose: int, quiet: int) -> str:
    if quiet >= 2:
        return "critical"
    if quiet == 1:
        return "error"
    if verbose >= 2:
        return "debug"
    if verbose == 1:
        return "info"
    return "warning"


def report_errors(errors: Iterable[TranspileError]) -> None:
    for error in errors:
        click.echo(f"error: {error.one_line()}", err=True)


def existing_path(value: Path) -> Path:
    if not value.exists():
        raise CliError(FILE_OR_DIRECTORY_NOT_FOUND, str(value))
    return value


def resolve_remap(
    target: Path, remap_file: Optional[Path], no_remap: bool, config: CompilerConfig
) -> Optional[RemapConfig]:
    """Load the Remap.toml given on the command line, or the auto-detected one."""
    if remap_file is not None and no_remap:
        raise CliError(REDUNDANT_PARAMETER, "--remap-file cannot be combined with --no-remap")
    if remap_file is not None:
        path = existing_path(remap_file)
        if path.is_dir():
            raise CliError(PATH_IS_DIRECTORY, str(path))
    elif no_remap:
        return None
    else:
        path = detect_remap_file(target, config.remap_filename)
        if path is None:
            logger.info("Not using a remap file")
            return None
    logger.info("Using remap file: %s", path)
    return load_remap(path)


def _fenced(path: Path, text: str) -> str:
    body = text.rstrip("\n")
    return f"Transpile result for '{path}':\n```\n{body}\n```"


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option("-q", "--quiet", count=True, help="Show fewer log messages (-qq for none)")
@click.option("-v", "--verbose", count=True, help="Show more log messages (-vv for debug)")
@click.pass_context
def main(ctx, quiet, verbose):
    """Transpile numeric Python to Rust with ndarray."""
    setup_logging(log_level_for(verbose, quiet))
    ctx.obj = DEFAULT_CONFIG


@main.command("transpile")
@click.argument("input_path", metavar="INPUT", type=click.Path(path_type=Path))
@click.option("-l", "--lines", is_flag=True, help="Add line numbers to output")
@click.option(
    "-o",
    "--output",
    type=click.Path(path_type=Path),
    help="Output file or directory; must be the same kind as INPUT",
)
@click.option(
    "--emit-manifest/--omit-manifest",
    default=False,
    help="Also write a Cargo.toml (module input and directory output only)",
)
@click.option(
    "--overwrite-manifest/--keep-manifest",
    default=True,
    help="Replace an existing Cargo.toml",
)
@click.option("--report", type=click.Path(path_type=Path), help="Write a JSON transpilation report")
@click.option(
    "-m",
    "--remap-file",
    type=click.Path(path_type=Path),
    help="Remap.toml with dependencies and type hints (auto-detected when omitted)",
)
@click.option("--no-remap", is_flag=True, help="Do not auto-detect a Remap.toml")
@click.option("-j", "--jobs", type=click.IntRange(min=1), help="Worker processes for modules")
@click.option("--progress", is_flag=True, help="Show a progress bar for modules")
@click.pass_obj
def transpile(
    config,
    input_path,
    lines,
    output,
    emit_manifest,
    overwrite_manifest,
    report,
    remap_file,
    no_remap,
    jobs,
    progress,
):
    """Transpile INPUT, which is a file or a module directory."""
    input_path = existing_path(input_path)
    if jobs is not None:
        config = replace(config, jobs=jobs)
    hints = _load_hints(input_path, remap_file, no_remap, config)

    if input_path.is_file():
        ok = _transpile_single(input_path, output, lines, emit_manifest, report, config, hints)
    else:
        ok = _transpile_tree(
            input_path,
            output,
            lines,
            emit_manifest,
            overwrite_manifest,
            report,
            progress,
            config,
            hints,
        )
    if not ok:
        sys.exit(1)


main.add_command(transpile, name="tp")


def _load_hints(target, remap_file, no_remap, config) -> Optional[RemapConfig]:
    try:
        return resolve_remap(target, remap_file, no_remap, config)
    except TranspileError as error:
        report_errors([error])
        sys.exit(1)


def _transpile_single(path, output, lines, emit_manifest, report, config, hints) -> bool:
    if emit_manifest:
        raise CliError(
            REDUNDANT_PARAMETER,
            "--emit-manifest only makes sense when transpiling a module into a directory",
        )
    if output is not None and output.is_dir():
        raise CliError(PATH_IS_DIRECTORY, str(output))

    result = transpile_file(path, config=config, hints=hints)
    if report is not None:
        manifest = ManifestBuilder(path.parent)
        manifest.submit(result.entry)
        manifest.write(report)
    if not result.ok:
        report_errors(result.errors)
        return False

    text = add_line_numbers(result.rust_source) if lines else result.rust_source
    if output is not None:
        write_text(output, text)
    else:
        click.echo(_fenced(path, text))
    return True


def _transpile_tree(
    root, output, lines, emit_manifest, overwrite_manifest, report, progress, config, hints
) -> bool:
    if output is not None and output.is_file():
        raise CliError(PATH_IS_FILE, str(output))
    if emit_manifest and output is None:
        raise CliError(
            REDUNDANT_PARAMETER,
            "--emit-manifest only makes sense when transpiling a module into a directory",
        )

    transpilation = transpile_module(
        root, jobs=config.jobs, progress=progress, config=config, hints=hints
    )
    if output is not None:
        write_module_output(
            transpilation,
            output,
            line_numbers=lines,
            emit_manifest=emit_manifest,
            overwrite_manifest=overwrite_manifest,
            dependencies=hints.dependencies if hints is not None else None,
            config=config,
        )
    else:
        for transpiled in transpilation.files:
            if transpiled.ok:
                text = transpiled.rust_source
                click.echo(_fenced(root / transpiled.source_path, add_line_numbers(text) if lines else text))
    if report is not None:
        transpilation.manifest.write(report)

    report_errors(transpilation.errors())
    return transpilation.ok


@main.command("steps")
@click.argument("input_path", metavar="INPUT", type=click.Path(path_type=Path))
@click.option("-l", "--line", type=click.IntRange(min=1), required=True, help="Show steps for this line")
@click.option(
    "-m",
    "--module",
    "module_root",
    type=click.Path(path_type=Path),
    help="Module root; INPUT may then be relative to it",
)
@click.pass_obj
def steps(config, input_path, line, module_root):
    """Show the transpilation steps for one line of INPUT."""
    hints = None
    if module_root is not None:
        module_root = existing_path(module_root)
        if not module_root.is_dir():
            raise CliError(PATH_IS_FILE, str(module_root))
        if not input_path.exists():
            input_path = module_root / input_path
    input_path = existing_path(input_path)
    if not input_path.is_file():
        raise CliError(PATH_IS_DIRECTORY, str(input_path))
    if module_root is None:
        hints = _load_hints(input_path, None, False, config)

    snapshot = StepInspector(config, hints).inspect(input_path, line, module_root)
    click.echo(snapshot.render().rstrip("\n"))
    if not snapshot.complete:
        _, reason = snapshot.failure
        click.echo(f"error: {reason}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
