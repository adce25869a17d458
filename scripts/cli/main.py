#!/usr/bin/env python3
"""routesynth CLI: scan message routes and write the typed messaging module."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path
from typing import List

from _fs import safe_preview_text, write_text_if_changed
from ir import new_ir, save_ir
from routesynth import CONFLICT_POLICIES, BuilderStateError, RouteBuilder, SynthConfigError, SynthOptions
from routesynth.watch import watch_builder
from utils import drain, progress, report_warnings
from .config import resolve_options, resolve_out_path


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Typed message-route module generator")
    parser.add_argument("--root", default=".", help="Project root (default: .)")
    parser.add_argument(
        "--include",
        action="append",
        default=None,
        help="Glob(s) of files to scan; repeat or comma-separate (default: src/**/*.{ts,tsx})",
    )
    parser.add_argument(
        "--exclude", action="append", default=None, help="Glob(s) to leave out of the scan"
    )
    parser.add_argument("--module-name", default=None, help="Virtual module name")
    parser.add_argument(
        "--runtime-module", default=None, help="Module the generated code imports factories from"
    )
    parser.add_argument("--tsconfig", default=None, help="tsconfig used for import aliases")
    parser.add_argument(
        "--conflicts",
        choices=list(CONFLICT_POLICIES),
        default=None,
        help="Which file wins when two files declare one path (default: last)",
    )
    parser.add_argument("--quiet", action="store_true", help="No progress output")

    subparsers = parser.add_subparsers(dest="command")

    generate_parser = subparsers.add_parser("generate", help="Scan and write the declaration file")
    generate_parser.add_argument(
        "--out", default=None, help="Output file (default: declarationFile from config)"
    )
    generate_parser.add_argument(
        "--stdout", action="store_true", help="Print the module instead of writing it"
    )
    generate_parser.add_argument(
        "--check",
        action="store_true",
        help="Exit 1 when the declaration file is missing or out of date",
    )

    routes_parser = subparsers.add_parser("routes", help="List discovered routes")
    routes_parser.add_argument("--format", choices=["json", "text"], default="text")
    routes_parser.add_argument(
        "--definitions",
        action="store_true",
        help="Show every router definition instead of the merged table",
    )
    routes_parser.add_argument("--save", default=None, help="Also write the JSON dump to this path")

    watch_parser = subparsers.add_parser("watch", help="Regenerate whenever sources change")
    watch_parser.add_argument(
        "--out", default=None, help="Output file (default: declarationFile from config)"
    )
    return parser


async def init_builder(root: Path, options: SynthOptions, warnings: List[str], quiet: bool) -> RouteBuilder:
    builder = RouteBuilder(root, options, warnings=warnings, quiet=quiet)
    await builder.init()
    return builder


def run_generate(args: argparse.Namespace, root: Path, options: SynthOptions, warnings: List[str]) -> int:
    builder = asyncio.run(init_builder(root, options, warnings, args.quiet))
    text = builder.update()
    if args.stdout:
        sys.stdout.write(text)
        return 0
    out_path = resolve_out_path(root, args.out, options)
    if args.check:
        try:
            current = out_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            current = None
        if current != text:
            print(f"{out_path} is out of date; run `routesynth generate`", file=sys.stderr)
            return 1
        return 0
    changed = write_text_if_changed(out_path, text)
    if not args.quiet:
        state = "Wrote" if changed else "Up to date:"
        progress(f"{state} {out_path} ({len(builder.routes())} routes)", done=True)
    return 0


def run_routes(args: argparse.Namespace, root: Path, options: SynthOptions, warnings: List[str]) -> int:
    builder = asyncio.run(init_builder(root, options, warnings, args.quiet))
    definitions = builder.definitions()
    table = builder.routes()
    payload = new_ir(root, definitions, table)
    if args.save:
        save_ir(Path(args.save), payload)
    if args.format == "json":
        if args.definitions:
            print(json.dumps(payload["definitions"], indent=2))
        else:
            print(json.dumps(payload["routes"], indent=2))
        return 0
    if args.definitions:
        for definition in definitions:
            group = f" group={definition.group}" if definition.group else ""
            print(f"{definition.file}{group}: {len(definition.routes)} routes")
            print(f"  from {safe_preview_text(' '.join(definition.routes_source.split()), 120)}")
            for route in definition.routes:
                print(f"  {route.path}")
        return 0
    for route in table:
        print(f"{route.path}\t({route.param_text}) => {route.return_type}\t{route.file}")
    return 0


async def watch_loop(args: argparse.Namespace, root: Path, options: SynthOptions, warnings: List[str]) -> None:
    builder = await init_builder(root, options, warnings, args.quiet)
    out_path = resolve_out_path(root, args.out, options)

    def flush() -> None:
        changed = write_text_if_changed(out_path, builder.get_virtual_module_content())
        report_warnings(drain(warnings))
        if changed and not args.quiet:
            progress(f"Wrote {out_path} ({len(builder.routes())} routes)", done=True)

    async def on_change() -> None:
        flush()

    flush()
    if not args.quiet:
        progress(f"Watching {root} for route changes (Ctrl+C to stop)")
    await watch_builder(builder, on_change=on_change)


def run_watch(args: argparse.Namespace, root: Path, options: SynthOptions, warnings: List[str]) -> int:
    try:
        asyncio.run(watch_loop(args, root, options, warnings))
    except KeyboardInterrupt:
        pass
    return 0


def main(argv: List[str] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if not args.command:
        args.command = "generate"
        args.out = None
        args.stdout = False
        args.check = False

    root = Path(args.root).resolve()
    warnings: List[str] = []
    try:
        options = resolve_options(args, root, warnings)
        if args.command == "generate":
            code = run_generate(args, root, options, warnings)
        elif args.command == "routes":
            code = run_routes(args, root, options, warnings)
        elif args.command == "watch":
            code = run_watch(args, root, options, warnings)
        else:
            parser.print_help()
            code = 1
    except SynthConfigError as exc:
        report_warnings(drain(warnings))
        print(f"Config error: {exc}", file=sys.stderr)
        return 2
    except BuilderStateError as exc:
        print(f"Internal error: {exc}", file=sys.stderr)
        return 1
    report_warnings(drain(warnings))
    return code


if __name__ == "__main__":
    raise SystemExit(main())
