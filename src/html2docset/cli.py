"""Command-line interface for html2docset."""

from __future__ import annotations

import argparse
import sqlite3
import sys
from pathlib import Path

from .version import __version__

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_USAGE = 2
EXIT_OUTPUT_DIR = 7


def _get_usage() -> str:
    return (
        f"html2docset {__version__}\n"
        "Usage:\n"
        "  html2docset [--help] [--version|--ver]\n"
        "  html2docset build [-f CONFIG] [-o OUTPUT] [options]\n"
        "  html2docset init [-f CONFIG]\n\n"
        "Commands:\n"
        "  build                        Build a docset from the HTML files under walk_root\n"
        "  init                         Write a starter dashing.yaml\n\n"
        "Options:\n"
        "  -f, --config PATH            YAML configuration file (default: ./dashing.yaml)\n"
        "  -o, --output DIR             Output directory (default: <package>.docset)\n"
        "  --verbose                    Verbose progress logs\n"
        "  --debug                      Debug logs"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument("command", nargs="?", choices=["build", "init"])
    parser.add_argument("--help", "-h", action="store_true")
    parser.add_argument("--version", action="store_true")
    parser.add_argument("--ver", action="store_true")
    parser.add_argument("--config", "-f", help="Path to the YAML configuration file")
    parser.add_argument("--output", "-o", help="Output directory for the docset")
    parser.add_argument("--verbose", action="store_true", help="Verbose progress logs")
    parser.add_argument("--debug", action="store_true", help="Debug logs")
    return parser


def _resolve_config_path(value: str | None) -> Path:
    cleaned = (value or "").strip()
    if not cleaned:
        from .config import DEFAULT_CONFIG_NAME

        cleaned = f"./{DEFAULT_CONFIG_NAME}"
    return Path(cleaned).expanduser()


def _run_init(args: argparse.Namespace) -> int:
    from . import config as config_mod

    target = _resolve_config_path(args.config)
    if target.exists():
        print(f"Configuration file already exists: {target}", file=sys.stderr)
        return EXIT_CONFIG
    try:
        config_mod.write_default_config(target)
    except OSError as exc:
        print(f"Unable to write configuration file {target}: {exc}", file=sys.stderr)
        return EXIT_CONFIG
    print(f"Wrote {target}")
    return EXIT_OK


def _run_build(args: argparse.Namespace) -> int:
    from . import config as config_mod
    from . import core, docset

    core.setup_logging(args.verbose, args.debug)

    config_path = _resolve_config_path(args.config)
    try:
        config = config_mod.load_config(config_path)
    except config_mod.ConfigError as exc:
        print(f"{exc} (Run `html2docset init`?)", file=sys.stderr)
        return EXIT_CONFIG
    core.LOG.debug("Configuration: %s", config_mod.config_summary(config))

    output = (args.output or "").strip() or f"{config.package}.docset"
    out_dir = Path(output).expanduser()
    if out_dir.exists() and not out_dir.is_dir():
        print(f"Output path is not a directory: {out_dir}", file=sys.stderr)
        return EXIT_OUTPUT_DIR
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        print(f"Unable to create output directory {out_dir}: {exc}", file=sys.stderr)
        return EXIT_OUTPUT_DIR

    print(f"Building {config.package} from files in '{config.walk_root}'.")
    try:
        summary = docset.build_docset(config, out_dir)
    except (OSError, sqlite3.Error) as exc:
        print(f"Failed to create database: {exc}", file=sys.stderr)
        return EXIT_OUTPUT_DIR

    print(
        f"Indexed {summary.references} entries from {summary.pages} pages, "
        f"copied {summary.resources} resources, skipped {summary.skipped} files."
    )
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]

    parser = _build_parser()
    try:
        args, unknown = parser.parse_known_args(argv)
    except SystemExit:
        print(_get_usage())
        return EXIT_USAGE
    if unknown:
        print(_get_usage())
        return EXIT_USAGE

    if not argv or args.help:
        print(_get_usage())
        return EXIT_OK

    if args.version or args.ver:
        print(__version__)
        return EXIT_OK

    if args.command == "init":
        return _run_init(args)
    if args.command == "build":
        return _run_build(args)

    print(_get_usage())
    return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
