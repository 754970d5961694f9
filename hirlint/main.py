#!/usr/bin/env python3
"""hirlint/main.py — CLI entry-point for hirlint.

Usage examples
--------------
    # Lint one or more HIR dumps
    hirlint check target/hir/lib.rs.hir

    # Strict generic-argument comparison, four worker threads, JSON output
    hirlint check *.hir --policy strict --workers 4 -f json

    # List available checkers
    hirlint checkers

    # Show what the lint sees in a dump (debugging aid)
    hirlint dump target/hir/lib.rs.hir

    # Show version and exit
    hirlint --version

Exit codes
----------
    0   Success, nothing reported.
    1   One or more findings were reported.
    2   Infrastructure failure (missing or malformed dump, bad config, ...).
    130 Interrupted.

The module doubles as ``python -m hirlint`` via the companion
``hirlint/__main__.py`` which simply calls :func:`main`.
"""

from __future__ import annotations

import argparse
import logging
import sys
import textwrap
import threading
from pathlib import Path
from typing import Optional, Sequence, TextIO

from . import __version__
from .checkers import (
    CheckerRunner,
    CheckerRunResults,
    DiagnosticSeverity,
    INTERNAL_ERROR_ID,
    default_registry,
)
from .checkers import run_dumps
from .collection import collect
from .config import LintConfig, OUTPUT_FORMATS, GENERIC_POLICIES, discover_config, load_config
from .errors import HirlintError
from .hir_dump import load_dump_file
from .walker import traverse

_log = logging.getLogger("hirlint")

# Exit codes ----------------------------------------------------------------

EXIT_OK: int = 0
EXIT_FINDINGS: int = 1
EXIT_INFRA: int = 2
EXIT_INTERRUPTED: int = 130


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Attach a stderr handler to the ``hirlint`` logger.

    ``-v`` count: none for warnings only, one for info, two or more for debug.
    """
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("hirlint")
    for old in list(root.handlers):
        root.removeHandler(old)
    root.setLevel(level)
    root.addHandler(handler)


def _open_output(dest: Optional[str]) -> TextIO:
    """stdout for ``None`` / ``"-"``, else *dest* opened for writing
    (missing parent directories are created)."""
    if dest is None or dest == "-":
        return sys.stdout
    target = Path(dest).expanduser()
    target.parent.mkdir(parents=True, exist_ok=True)
    return target.open("w", encoding="utf-8")


def _write_results(results: CheckerRunResults, fmt: str, stream: TextIO) -> None:
    if fmt == "json":
        body = results.to_json_lines()
    elif fmt == "gcc":
        body = results.to_gcc_format()
    else:
        body = results.summary()
    if body:
        stream.write(body + "\n")


def _resolve_config(args: argparse.Namespace) -> LintConfig:
    """Defaults ← config file ← command-line flags."""
    if args.config:
        config = load_config(args.config)
    else:
        found = discover_config()
        config = load_config(found) if found is not None else LintConfig()
    config = config.merged(
        generic_policy=args.policy,
        workers=args.workers,
        checkers=args.checkers,
        output_format=args.format,
    )
    if args.suppress:
        config = config.merged(suppress=[*config.suppress, *args.suppress])
    config.check()
    return config


# ===========================================================================
# Sub-command implementations
# ===========================================================================

# ---------------------------------------------------------------------------
# check
# ---------------------------------------------------------------------------

def cmd_check(args: argparse.Namespace) -> int:
    """Lint HIR dumps and report findings.

    Workflow:
        1. Resolve configuration (file, then flags).
        2. Load each dump and run the selected checkers over it.
        3. Emit diagnostics and return an appropriate exit code.
    """
    config = _resolve_config(args)

    registry = default_registry()
    if config.checkers is not None:
        unknown = [n for n in config.checkers if registry.get_by_name(n) is None]
        if unknown:
            _log.error("unknown checker(s): %s (available: %s)",
                       ", ".join(unknown), ", ".join(registry.names))
            return EXIT_INFRA

    cancel = threading.Event()
    runner = CheckerRunner(
        registry=registry,
        suppressions=config.build_suppressions(),
        options=config.to_options(),
        cancel=cancel,
    )
    try:
        results = run_dumps(args.dumps, runner=runner, checkers=config.checkers)
    except KeyboardInterrupt:
        cancel.set()
        raise

    out = _open_output(args.output)
    try:
        _write_results(results, config.output_format, out)
    finally:
        if out is not sys.stdout:
            out.close()

    findings = [
        d for d in results.diagnostics
        if d.severity != DiagnosticSeverity.INFORMATION
    ]
    _log.info("%d finding(s) in %d dump(s)", len(findings), len(args.dumps))
    if findings:
        return EXIT_FINDINGS
    if any(d.error_id == INTERNAL_ERROR_ID for d in results.diagnostics):
        return EXIT_INFRA
    return EXIT_OK


# ---------------------------------------------------------------------------
# checkers
# ---------------------------------------------------------------------------

def cmd_checkers(args: argparse.Namespace) -> int:
    """List registered checkers."""
    registry = default_registry()
    for name in registry.names:
        cls = registry.get_by_name(name)
        print(f"  {name:28s} {cls.description}")
        print(f"  {'':28s} IDs: {', '.join(sorted(cls.error_ids))}")
        print(f"  {'':28s} severity: {cls.default_severity.value}")
    return EXIT_OK


# ---------------------------------------------------------------------------
# dump
# ---------------------------------------------------------------------------

def cmd_dump(args: argparse.Namespace) -> int:
    """Print the implementation blocks, bindings and occurrence counts of a dump."""
    crate = load_dump_file(args.dump)
    out = _open_output(args.output)
    try:
        out.write(f"crate {crate.file}: {len(crate.impls)} impl block(s)\n")
        for block in crate.impls:
            index = collect(block)
            out.write(f"\n{block.span}: {block.describe()}\n")
            for entry in index:
                marker = "" if entry.supported else "  (unsupported)"
                out.write(f"  {entry.binding}{marker}\n")
            for method in block.methods:
                count = sum(1 for _ in traverse(method))
                out.write(f"  fn {method.name}: {count} occurrence(s)\n")
        if crate.suppressions:
            out.write(f"\n{len(crate.suppressions)} inline suppression(s)\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""

    parser = argparse.ArgumentParser(
        prog="hirlint",
        description=(
            "hirlint — lints over name-resolved syntax-tree (HIR) dumps.\n\n"
            "Reports concrete types used inside implementation blocks where\n"
            "the block's associated type could be named instead."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              hirlint check lib.rs.hir
              hirlint check *.hir --policy strict -f json -o findings.json
              hirlint dump lib.rs.hir
        """),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(
        dest="command",
        title="commands",
        metavar="<command>",
    )

    def _add_output_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "-o", "--output",
            default=None,
            metavar="FILE",
            help='Output file ("-" or omit for stdout).',
        )

    # --- check -------------------------------------------------------------
    p_check = subparsers.add_parser(
        "check",
        help="Lint HIR dump files.",
        description="Run the enabled checkers over one or more HIR dumps.",
    )
    p_check.add_argument("dumps", nargs="+", metavar="DUMP", help="HIR dump file(s).")
    p_check.add_argument(
        "--config",
        default=None,
        metavar="FILE",
        help="JSON configuration file (default: ./hirlint.json when present).",
    )
    p_check.add_argument(
        "--checkers",
        nargs="+",
        default=None,
        metavar="NAME",
        help="Checker names to run (default: all).",
    )
    p_check.add_argument(
        "--suppress",
        nargs="+",
        default=None,
        metavar="ID",
        help="Error ids to suppress globally.",
    )
    p_check.add_argument(
        "--policy",
        choices=list(GENERIC_POLICIES),
        default=None,
        help="Generic-argument comparison policy (default: lenient).",
    )
    p_check.add_argument(
        "--workers",
        type=int,
        default=None,
        metavar="N",
        help="Analyse implementation blocks on N threads (default: 1).",
    )
    p_check.add_argument(
        "-f", "--format",
        choices=list(OUTPUT_FORMATS),
        default=None,
        help="Output format (default: gcc).",
    )
    _add_output_arg(p_check)
    p_check.set_defaults(func=cmd_check)

    # --- checkers ----------------------------------------------------------
    p_checkers = subparsers.add_parser(
        "checkers",
        help="List available checkers.",
    )
    p_checkers.set_defaults(func=cmd_checkers)

    # --- dump --------------------------------------------------------------
    p_dump = subparsers.add_parser(
        "dump",
        help="Show implementation blocks and bindings found in a dump.",
    )
    p_dump.add_argument("dump", metavar="DUMP", help="HIR dump file.")
    _add_output_arg(p_dump)
    p_dump.set_defaults(func=cmd_dump)

    return parser


# ===========================================================================
# Main
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Parse *argv* (default ``sys.argv[1:]``), dispatch to the sub-command
    and map failures onto the exit codes listed in the module docstring."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return EXIT_INTERRUPTED
    except HirlintError as exc:
        sys.stderr.write(exc.to_gcc_format() + "\n")
        return EXIT_INFRA
    except OSError as exc:
        _log.error("%s", exc)
        return EXIT_INFRA


# ---------------------------------------------------------------------------
# Module execution support
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    raise SystemExit(main())
