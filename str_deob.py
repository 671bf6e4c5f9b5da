#!/usr/bin/env python3
"""Recover obfuscated string literals from a module dump."""

from __future__ import annotations

import argparse
import json
import logging
import time
from dataclasses import replace
from pathlib import Path

from strdeob import BlobNotFoundError, EngineOptions, Module, StringDecryptionEngine
from strdeob.errors import ModuleFormatError, OptionsError


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("input", type=Path, help="JSON module dump to deobfuscate")
    parser.add_argument(
        "-o",
        "--output",
        type=Path,
        default=None,
        help="Override the default <input>.patched.json output path",
    )
    parser.add_argument(
        "--options",
        type=Path,
        default=None,
        help="JSON profile overriding the engine heuristics",
    )
    parser.add_argument(
        "--workers",
        type=int,
        default=None,
        help="Number of worker threads used to process routines",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Decode call sites without patching or writing the module",
    )
    parser.add_argument(
        "--survey",
        action="store_true",
        help="Only list load-constant/call pairs that look like string references",
    )
    parser.add_argument(
        "--report-json",
        type=Path,
        default=None,
        help="Write the run report as JSON to this path",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args()


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


def resolve_options(args: argparse.Namespace) -> EngineOptions:
    options = EngineOptions.load(args.options) if args.options else EngineOptions()
    if args.workers is not None:
        options = replace(options, workers=args.workers)
    if args.dry_run:
        options = replace(options, patch=False)
    return options


def default_output_path(input_path: Path) -> Path:
    return input_path.with_name(f"{input_path.stem}.patched.json")


def main() -> None:
    start_time = time.perf_counter()
    args = parse_args()
    configure_logging(args.verbose)
    if not args.input.is_file():
        raise SystemExit(f"missing input file: {args.input}")

    try:
        options = resolve_options(args)
        module = Module.load(args.input)
    except (ModuleFormatError, OptionsError) as exc:
        raise SystemExit(f"invalid input: {exc}") from exc

    engine = StringDecryptionEngine(options)
    if args.survey:
        sites = engine.survey(module)
        for site in sites:
            print(site.describe())
        print(f"string-like calls: {len(sites)}")
        return

    try:
        report = engine.run(module)
    except BlobNotFoundError as exc:
        raise SystemExit(f"no string data: {exc}") from exc

    for line in report.string_lines():
        print(line)
    for line in report.summary_lines():
        print(line)

    if args.report_json is not None:
        args.report_json.write_text(json.dumps(report.to_dict(), indent=2), "utf-8")
        print(f"report written to {args.report_json}")

    if options.patch:
        output_path = args.output or default_output_path(args.input)
        module.write(output_path)
        print(f"patched module written to {output_path}")

    total_time = time.perf_counter() - start_time
    print(f"total execution time: {total_time:.2f}s")


if __name__ == "__main__":
    main()
