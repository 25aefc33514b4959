"""
fuse_context: Fuse a source tree into token-bounded context files for an LLM.

Overview
--------
Collects the files of a project (template extensions, excluded directories,
.gitignore rules, size/binary/test-project filters), reduces them with the
per-format minifiers, and writes them as framed blocks into one or more output
parts whose token counts stay under a split threshold and a global cap.

Usage
-----
Run `fuse --help` for full options. Common examples:
    - Python project, one file per 800k tokens (default split):
        uv run fuse --directory . --template python

    - .NET solution with every C# reduction, hard cap at 1M tokens:
        uv run fuse dotnet --directory src --all --max-tokens 1000000

    - Azure DevOps wiki, no splitting, explicit output name:
        uv run fuse wiki --directory wiki --split-tokens 0 --name wiki.md

    - Log to a file:
        uv run fuse --directory . --log-file fuse.log
"""

from __future__ import annotations

import argparse
import signal
import sys
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any

from fuse_context import __version__
from fuse_context.config import ProjectTemplate, resolve_collection_config
from fuse_context.exceptions import ConfigurationError, OutputConflictError, SourceDirectoryNotFoundError
from fuse_context.file_manipulation import collect_files
from fuse_context.gitignore import resolve_gitignore
from fuse_context.logging import logger, setup_logging
from fuse_context.minifiers import ContentTransformer
from fuse_context.output_construction import RunBudget, assemble, make_naming_policy
from fuse_context.settings import build_settings
from fuse_context.tokens import TokenEstimator

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence
    from datetime import datetime

    from fuse_context.output_construction import FusionResult
    from fuse_context.settings import Settings

COMMAND_TEMPLATES: dict[str, ProjectTemplate] = {
    "dotnet": ProjectTemplate.DOTNET,
    "wiki": ProjectTemplate.AZURE_DEVOPS_WIKI,
}


def _add_common_arguments(p: argparse.ArgumentParser) -> None:
    p.add_argument("-d", "--directory", type=str, help="Directory to fuse (default: current directory).")
    p.add_argument(
        "-o",
        "--output-dir",
        type=str,
        help="Output directory (default: $FUSE_OUTPUT_DIR or current directory).",
    )
    p.add_argument("-n", "--name", type=str, help="Output file name; extension defaults to .txt.")
    p.add_argument("--config", type=str, help="YAML file with option defaults.")
    p.add_argument("--log-file", type=str, help="Log file path.")

    sel = p.add_argument_group("selection")
    sel.add_argument("--include-extensions", type=str, help="Comma list of extra extensions.")
    sel.add_argument("--exclude-extensions", type=str, help="Comma list of template extensions to drop.")
    sel.add_argument("--only-extensions", type=str, help="Comma list; only these extensions are kept.")
    sel.add_argument("--exclude-directories", type=str, help="Comma list of extra excluded directories.")
    sel.add_argument("--exclude-patterns", type=str, help="Comma list of excluded file-name globs.")
    sel.add_argument("--recursive", action=argparse.BooleanOptionalAction, help="Search subdirectories.")
    sel.add_argument("--max-file-size-kb", type=int, help="Skip files above this size, 0 = unlimited.")
    sel.add_argument("--ignore-binary", action=argparse.BooleanOptionalAction, help="Skip binary files.")
    sel.add_argument(
        "--respect-gitignore",
        action=argparse.BooleanOptionalAction,
        help="Apply .gitignore rules.",
    )
    tests = sel.add_mutually_exclusive_group()
    tests.add_argument("--exclude-test-projects", action="store_true", help="Skip all test projects.")
    tests.add_argument(
        "--exclude-unit-test-projects",
        action="store_true",
        help="Skip unit-test projects, keep integration tests.",
    )

    out = p.add_argument_group("output")
    out.add_argument("--overwrite", action=argparse.BooleanOptionalAction, help="Overwrite existing output.")
    out.add_argument("--trim", action=argparse.BooleanOptionalAction, help="Trim whitespace on every line.")
    out.add_argument("--condense", action=argparse.BooleanOptionalAction, help="Remove blank lines.")
    out.add_argument("--include-metadata", action="store_true", help="Write size/mtime per file.")
    out.add_argument("--minify-xml", action=argparse.BooleanOptionalAction, help="Minify XML and project files.")
    out.add_argument("--minify-html", action=argparse.BooleanOptionalAction, help="Minify HTML and Razor files.")
    out.add_argument("--max-tokens", type=int, help="Hard cap on tokens across all parts.")
    out.add_argument("--split-tokens", type=int, help="Tokens per output part, 0 disables splitting.")
    out.add_argument(
        "--show-token-count",
        action=argparse.BooleanOptionalAction,
        help="Report token totals.",
    )
    out.add_argument("--encoding", type=str, help="tiktoken encoding name, or 'approx'.")
    out.add_argument("--workers", type=int, help="Worker threads, 0 = automatic.")


def _add_csharp_arguments(p: argparse.ArgumentParser) -> None:
    cs = p.add_argument_group("c#")
    cs.add_argument("--remove-namespaces", action="store_true", help="Strip namespace declarations.")
    cs.add_argument("--remove-comments", action="store_true", help="Strip comments.")
    cs.add_argument("--remove-regions", action="store_true", help="Strip #region directives.")
    cs.add_argument("--remove-usings", action="store_true", help="Strip using directives.")
    cs.add_argument("--aggressive", action="store_true", help="Collapse whitespace around punctuation.")
    cs.add_argument("--all", dest="apply_all", action="store_true", help="Apply every C# reduction.")


def build_parser() -> argparse.ArgumentParser:
    """Build the ``fuse`` parser and its ``dotnet`` and ``wiki`` subcommands.

    Options default to ``SUPPRESS`` so only flags given on the command line reach
    the settings, layered over the config file and the model defaults.
    """
    p = argparse.ArgumentParser(
        prog="fuse",
        description="Fuse a source tree into token-bounded context files.",
        argument_default=argparse.SUPPRESS,
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument(
        "-t",
        "--template",
        type=str,
        choices=[t.value for t in ProjectTemplate],
        help="Project template.",
    )
    _add_common_arguments(p)
    _add_csharp_arguments(p)

    sub = p.add_subparsers(dest="command")
    dotnet = sub.add_parser(
        "dotnet",
        help="Fuse a .NET solution.",
        argument_default=argparse.SUPPRESS,
    )
    _add_common_arguments(dotnet)
    _add_csharp_arguments(dotnet)
    wiki = sub.add_parser(
        "wiki",
        help="Fuse an Azure DevOps wiki.",
        argument_default=argparse.SUPPRESS,
    )
    _add_common_arguments(wiki)
    return p


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    """Parse command-line arguments into validated settings.

    Raises:
        InvalidConfigurationError: if the config file or an option value is invalid.
    """
    values: dict[str, Any] = vars(build_parser().parse_args(argv))
    command = values.pop("command", None)
    config_file = values.pop("config", None)
    if command in COMMAND_TEMPLATES:
        values["template"] = COMMAND_TEMPLATES[command]
    return build_settings(values, config_file)


def fuse_directory(
    settings: Settings,
    *,
    cancel: threading.Event | None = None,
    estimate_tokens: Callable[[str], int] | None = None,
    now: datetime | None = None,
) -> FusionResult | None:
    """Resolve the configuration, collect files and assemble the output parts.

    Args:
        settings (Settings): run options.
        cancel (threading.Event | None): shared cancellation signal.
        estimate_tokens (Callable[[str], int] | None): token estimator, built from
            ``settings.encoding`` when omitted.
        now (datetime | None): timestamp for generated output names.

    Raises:
        SourceDirectoryNotFoundError: if the source directory does not exist.
        OutputConflictError: if the first output part exists and overwrite is disabled.

    Returns:
        FusionResult | None: the run result, or None when no file matched.
    """
    source = Path(settings.directory)
    if not source.is_dir():
        logger.error("source_directory_missing", directory=str(source))
        raise SourceDirectoryNotFoundError(directory=source)
    source = source.resolve()

    config = resolve_collection_config(settings)
    rules = resolve_gitignore(source) if config.respect_gitignore else []
    workers = settings.workers or None
    files = collect_files(source, config, rules, workers=workers, cancel=cancel)
    if not files:
        logger.warning("no_files_found", directory=str(source))
        return None

    budget = RunBudget(global_token_cap=settings.max_tokens, split_threshold=settings.split_tokens)
    return assemble(
        files,
        ContentTransformer(settings),
        estimate_tokens or TokenEstimator(settings.encoding),
        budget,
        make_naming_policy(settings, now=now),
        source_dir=source,
        include_metadata=settings.include_metadata,
        cancel=cancel,
        workers=workers,
    )


class CancelOnInterrupt:
    """Turn the first Ctrl-C into a cooperative cancellation, the second into an interrupt.

    Only installs its handler on the main thread. Exceptions raised in the body pass
    through untouched, so frozen ``FuseError`` instances reach the caller as raised.
    """

    def __init__(self, cancel: threading.Event) -> None:
        self.cancel = cancel
        self._previous: Any = None
        self._installed = False

    def _handle(self, signum: int, frame: Any) -> None:  # noqa: ANN401
        if self.cancel.is_set():
            signal.default_int_handler(signum, frame)
        logger.warning("run_interrupted")
        self.cancel.set()

    def __enter__(self) -> threading.Event:
        if threading.current_thread() is threading.main_thread():
            self._previous = signal.getsignal(signal.SIGINT)
            signal.signal(signal.SIGINT, self._handle)
            self._installed = True
        return self.cancel

    def __exit__(self, *exc_info: object) -> None:
        if self._installed:
            signal.signal(signal.SIGINT, self._previous)
            self._installed = False


def format_size(size: int) -> str:
    """Render a byte count in KB with one decimal."""
    return f"{size / 1024:.1f} KB"


def print_summary(result: FusionResult, settings: Settings) -> None:
    """Print the run summary to stdout."""
    for part in result.parts:
        size = part.path.stat().st_size if part.path.exists() else 0
        print(f"Wrote {part.path} ({format_size(size)}, {part.files_written} files)")
    print(f"Processed {result.processed_file_count}/{result.total_file_count} files in {result.duration_seconds:.1f}s")
    if result.skipped_trivial or result.skipped_errors:
        print(f"Skipped {result.skipped_trivial} trivial and {result.skipped_errors} unreadable files")
    if result.stop_reason == "token_cap":
        print(f"Stopped early: token cap of {settings.max_tokens:,} reached")
    elif result.stop_reason == "cancelled":
        print("Stopped early: cancelled")
    elif result.stop_reason == "output_conflict":
        print(f"Stopped early: {result.conflict_path} already exists, kept {result.total_tokens:,} tokens written so far")
    if settings.show_token_count:
        print(f"Total tokens: {result.total_tokens:,}")
        if result.top_token_files:
            print("Top token consumers:")
            for rel, tokens in result.top_token_files:
                print(f"  {tokens:>10,}  {rel}")


def main(argv: Sequence[str] | None = None) -> int:
    """Run the ``fuse`` command.

    Returns:
        int: 1 when a configuration error or an output conflict stops the run, with
            the error on stderr; 0 otherwise.
    """
    try:
        settings = parse_args(argv)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    if settings.log_file:
        setup_logging(settings.log_file)

    cancel = threading.Event()
    try:
        with CancelOnInterrupt(cancel):
            result = fuse_directory(settings, cancel=cancel)
    except ConfigurationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if result is None:
        print("No files found matching the criteria. Aborting.")
        return 0
    print_summary(result, settings)
    if result.stop_reason == "output_conflict":
        print(f"Error: {OutputConflictError.message} ({result.conflict_path})", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
