#!/usr/bin/env python3
# -*- coding: utf-8 -*-
# ****************************************************************************************************************************************************
# * BSD 3-Clause License
# *
# * Copyright (c) 2025, Mana Battery
# * All rights reserved.
# *
# * Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
# *
# * 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
# * 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
# *    documentation and/or other materials provided with the distribution.
# * 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
# *    software without specific prior written permission.
# *
# * THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
# * THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
# * CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
# * PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
# * LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
# * EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
# ****************************************************************************************************************************************************
"""
Native Build Trace Model

Reads captured dry-run traces of a native build driver (ndk-build -n -B,
make -n, ...) and reconstructs the libraries, source files, compile flags and
toolchains they describe. The build driver itself is never run: each trace is
one already-captured text file per (variant, ABI) pair.

USAGE:
    python3 buildTraceModel.py VARIANT=TRACE [VARIANT=TRACE ...] [options]

EXAMPLES:
    # Summarize one debug trace
    python3 buildTraceModel.py debug=trace-debug.txt

    # Merge debug and release traces and print the model as JSON
    python3 buildTraceModel.py debug=debug.txt release=release.txt --format json

    # Traces captured on a Windows host
    python3 buildTraceModel.py debug=trace.txt --dialect windows

    # Report cycles in the traces and export the file graph
    python3 buildTraceModel.py debug=trace.txt --cycles --export-graph trace.graphml

METHOD:
    1. Split each trace into command invocations (POSIX or Windows quoting)
    2. Classify invocations as compile, archive or irrelevant steps
    3. Walk back from every terminal output to its original sources
    4. Fold all traces into one model, sharing identical toolchains
"""

import sys
import json
import logging
import argparse
from typing import List, Tuple

from buildtrace.color_utils import Colors, print_error, print_success, print_warning, should_use_color
from buildtrace.command_line import Dialect
from buildtrace.config_builder import NativeBuildConfigBuilder, VariantRequest, analyze_variants_parallel
from buildtrace.constants import (
    EXIT_SUCCESS,
    MAX_CYCLES_DISPLAY,
    MAX_FLAGS_DISPLAY_CHARS,
    MAX_LIBRARIES_DISPLAY,
    MAX_SOURCES_DISPLAY,
    ArgumentError,
    TraceFileError,
)
from buildtrace.graph_utils import build_step_graph, export_graph_to_graphml, find_step_cycles
from buildtrace.models import AggregateBuildConfig
from buildtrace.package_verification import require_packages

logger = logging.getLogger(__name__)

DEFAULT_BUILD_COMMAND = "ndk-build"


def parse_trace_argument(value: str) -> Tuple[str, str]:
    """Split a 'variant=path' argument.

    Raises:
        ArgumentError: If the variant or path is missing
    """
    variant, sep, path = value.partition("=")
    if not sep or not variant or not path:
        raise ArgumentError(f"Trace argument '{value}' must look like VARIANT=PATH")
    return variant, path


def read_trace(path: str) -> str:
    """Read one captured trace file.

    Raises:
        TraceFileError: If the file cannot be read
    """
    try:
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return f.read()
    except OSError as e:
        raise TraceFileError(f"Cannot read trace '{path}': {e}") from e


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."


def print_model(model: AggregateBuildConfig) -> None:
    """Print a human readable summary of the model."""
    print(f"\n{Colors.BRIGHT}{'='*80}{Colors.RESET}")
    print(f"{Colors.BRIGHT}LIBRARIES ({len(model.libraries)}){Colors.RESET}")
    print(f"{Colors.BRIGHT}{'='*80}{Colors.RESET}")

    keys = sorted(model.libraries)
    for key in keys[:MAX_LIBRARIES_DISPLAY]:
        library = model.libraries[key]
        print(f"\n{Colors.CYAN}{key}{Colors.RESET}  {library.output}")
        print(f"  toolchain: {library.toolchain}")
        print(f"  sources:   {len(library.files)}")
        for entry in library.files[:MAX_SOURCES_DISPLAY]:
            flags = truncate(entry.flags, MAX_FLAGS_DISPLAY_CHARS)
            print(f"    {entry.src}  {Colors.DIM}{flags}{Colors.RESET}")
        if len(library.files) > MAX_SOURCES_DISPLAY:
            print(f"    ... and {len(library.files) - MAX_SOURCES_DISPLAY} more")
    if len(keys) > MAX_LIBRARIES_DISPLAY:
        print(f"\n... and {len(keys) - MAX_LIBRARIES_DISPLAY} more libraries")

    print(f"\n{Colors.BRIGHT}TOOLCHAINS ({len(model.toolchains)}){Colors.RESET}")
    for key in sorted(model.toolchains):
        toolchain = model.toolchains[key]
        compilers = ", ".join(f"{role}: {path}" for role, path in sorted(toolchain.compilers().items()))
        print(f"  {key}  {compilers or '(no compiler seen)'}")

    print(f"\n{Colors.BRIGHT}EXTENSIONS{Colors.RESET}")
    print(f"  C:   {' '.join(sorted(model.c_file_extensions)) or '-'}")
    print(f"  C++: {' '.join(sorted(model.cpp_file_extensions)) or '-'}")


def report_cycles(builder: NativeBuildConfigBuilder) -> int:
    """Print file cycles found in each trace; return how many were found."""
    total = 0
    for analyzed in builder.variants:
        cycles, self_loops = find_step_cycles(analyzed.steps)
        total += len(cycles) + len(self_loops)
        for cycle in cycles[:MAX_CYCLES_DISPLAY]:
            print_warning(f"[{analyzed.variant}] cycle: {' -> '.join(sorted(cycle))}")
        for path in self_loops[:MAX_CYCLES_DISPLAY]:
            print_warning(f"[{analyzed.variant}] step reads and writes {path}")
    if total == 0:
        print_success("No cycles found in the build traces")
    return total


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Reconstruct a native build model from captured build-driver traces",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s debug=trace.txt
  %(prog)s debug=debug.txt release=release.txt --format json
  %(prog)s debug=trace.txt --dialect windows
  %(prog)s debug=trace.txt --cycles --export-graph trace.graphml
        """,
    )

    parser.add_argument("traces", nargs="+", metavar="VARIANT=TRACE", help="Captured trace file for one (variant, ABI) pair")
    parser.add_argument(
        "--build-command", default=DEFAULT_BUILD_COMMAND, help=f"Command that produced the traces, stored in the model (default: {DEFAULT_BUILD_COMMAND})"
    )
    parser.add_argument("--build-file", action="append", default=[], metavar="PATH", help="Build script the traces came from (can be used multiple times)")
    parser.add_argument("--dialect", choices=["posix", "windows", "host"], default="host", help="Quoting rules of the traces (default: host)")
    parser.add_argument("--jobs", "-j", type=int, default=None, help="Number of traces to analyze concurrently")
    parser.add_argument("--format", choices=["text", "json"], default="text", help="Output format (default: text)")
    parser.add_argument("--cycles", action="store_true", help="Report file cycles in the traces")
    parser.add_argument("--export-graph", metavar="FILE", help="Export the file graph of all traces to GraphML")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging output")

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.WARNING
    logging.basicConfig(level=log_level, format="%(levelname)s: %(message)s")

    if not should_use_color(args.no_color) or args.format == "json":
        Colors.disable()

    require_packages("build trace analysis")

    if args.jobs is not None and args.jobs < 1:
        raise ArgumentError("--jobs must be at least 1")

    dialect = Dialect.parse(args.dialect)
    requests: List[VariantRequest] = []
    for value in args.traces:
        variant, path = parse_trace_argument(value)
        logger.debug("Reading %s trace %s", variant, path)
        requests.append(VariantRequest(args.build_command, variant, read_trace(path), dialect))

    builder = analyze_variants_parallel(requests, max_workers=args.jobs, builder=NativeBuildConfigBuilder(build_files=args.build_file))
    model = builder.build()

    if args.format == "json":
        print(json.dumps(model.to_dict(), indent=2))
    else:
        print_model(model)

    for warning in builder.warnings:
        print_warning(f"line {warning.line}: {warning.message}")
    for output in builder.suspicious_outputs:
        print_warning(f"Suspicious cycle while tracing {output}")

    if args.cycles:
        report_cycles(builder)

    if args.export_graph:
        steps = [step for analyzed in builder.variants for step in analyzed.steps]
        if not export_graph_to_graphml(build_step_graph(steps), args.export_graph):
            print_error(f"Could not export graph to {args.export_graph}")

    return EXIT_SUCCESS


if __name__ == "__main__":
    from buildtrace.constants import EXIT_KEYBOARD_INTERRUPT, EXIT_RUNTIME_ERROR, BuildTraceError

    try:
        exit_code = main()
        sys.exit(exit_code)
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        sys.exit(EXIT_KEYBOARD_INTERRUPT)
    except BuildTraceError as e:
        print_error(str(e))
        sys.exit(e.exit_code)
    except Exception as e:
        print(f"Fatal error: {e}", file=sys.stderr)
        sys.exit(EXIT_RUNTIME_ERROR)
