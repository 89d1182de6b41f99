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
"""Classify tokenized invocations into build steps.

Each invocation is tagged COMPILE, ARCHIVE or IRRELEVANT from its executable
name, then handed to the handler registered for that tag. Handlers pull the
input and output files out of the argument list using the tables in
buildtrace.flag_tables.
"""

import enum
import fnmatch
import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from dataclasses import dataclass

from buildtrace.command_line import Dialect, Invocation, TokenizeWarning, join_arguments, tokenize
from buildtrace.flag_tables import (
    ARCHIVER_CREATE_LETTERS,
    ARCHIVER_MODE_LETTERS,
    COMPILE_ONLY_FLAGS,
    DEFAULT_CONFIG,
    EXECUTABLE_SUFFIXES,
    OUTPUT_FLAG,
    STRUCTURAL_TOKENS,
    ClassifierConfig,
)

logger = logging.getLogger(__name__)

__all__ = ["StepKind", "BuildStep", "tool_kind", "classify", "classify_all", "classify_text", "compile_flags"]


class StepKind(enum.Enum):
    """Role of a command in the build graph."""

    COMPILE = "compile"
    ARCHIVE = "archive"
    IRRELEVANT = "irrelevant"


@dataclass(frozen=True)
class BuildStep:
    """A classified invocation with explicit input and output files.

    Attributes:
        invocation: The command this step was classified from
        kind: COMPILE or ARCHIVE
        inputs: Input files in argument order
        outputs: Output files in argument order (empty means not actionable)
        input_is_source: One flag per input, True for original source files
        executable: Compiler/archiver actually run, after build wrappers
            such as ccache have been removed
    """

    invocation: Invocation
    kind: StepKind
    inputs: Tuple[str, ...]
    outputs: Tuple[str, ...]
    input_is_source: Tuple[bool, ...]
    executable: str

    def __post_init__(self) -> None:
        if len(self.inputs) != len(self.input_is_source):
            raise ValueError("input_is_source must have one entry per input")

    @property
    def has_outputs(self) -> bool:
        return bool(self.outputs)

    def source_inputs(self) -> Tuple[str, ...]:
        """Inputs that are original source files."""
        return tuple(path for path, is_source in zip(self.inputs, self.input_is_source) if is_source)

    def is_source_input(self, path: str) -> bool:
        for candidate, is_source in zip(self.inputs, self.input_is_source):
            if candidate == path:
                return is_source
        return False

    def __str__(self) -> str:
        parts = [f"in:{path}" for path in self.inputs] + [f"out:{path}" for path in self.outputs]
        return "[" + " ".join(parts) + "]"


def _normalize_executable(executable: str) -> str:
    """Lower-cased basename with platform suffixes such as .exe removed."""
    basename = executable.replace("\\", "/").rsplit("/", 1)[-1].lower()
    for suffix in EXECUTABLE_SUFFIXES:
        if basename.endswith(suffix):
            return basename[: -len(suffix)]
    return basename


def _matches_any(name: str, patterns: Sequence[str]) -> bool:
    return any(fnmatch.fnmatchcase(name, pattern) for pattern in patterns)


def _unwrap(invocation: Invocation, config: ClassifierConfig) -> Tuple[str, List[str]]:
    """Strip build wrappers (ccache, distcc, ...) from the front of a command.

    Returns:
        Tuple of (real executable, its arguments)
    """
    executable = invocation.executable
    args = list(invocation.args)
    while args and _normalize_executable(executable) in config.build_wrappers:
        logger.debug("Removing build wrapper: %s", executable)
        executable = args.pop(0)
    return executable, args


def tool_kind(executable: str, config: ClassifierConfig = DEFAULT_CONFIG) -> StepKind:
    """Decide from an executable name which kind of build tool it is.

    Args:
        executable: Executable as written in the trace (any path prefix)
        config: Classification tables

    Returns:
        StepKind.COMPILE, StepKind.ARCHIVE or StepKind.IRRELEVANT

    Examples:
        >>> tool_kind("/ndk/bin/aarch64-linux-android-gcc")
        <StepKind.COMPILE: 'compile'>
        >>> tool_kind("gcc-ar")
        <StepKind.ARCHIVE: 'archive'>
        >>> tool_kind("mkdir")
        <StepKind.IRRELEVANT: 'irrelevant'>
    """
    name = _normalize_executable(executable)
    if not name or _matches_any(name, config.ignored_tools):
        return StepKind.IRRELEVANT
    if _matches_any(name, config.archiver_patterns):
        return StepKind.ARCHIVE
    if _matches_any(name, config.compiler_patterns):
        return StepKind.COMPILE
    return StepKind.IRRELEVANT


def _classify_compile(invocation: Invocation, executable: str, args: List[str], config: ClassifierConfig) -> Optional[BuildStep]:
    inputs: List[str] = []
    input_is_source: List[bool] = []
    outputs: List[str] = []

    i = 0
    while i < len(args):
        arg = args[i]

        if arg == OUTPUT_FLAG:
            if i + 1 < len(args):
                outputs.append(args[i + 1])
            i += 2
            continue

        if arg.startswith(OUTPUT_FLAG) and len(arg) > len(OUTPUT_FLAG):
            outputs.append(arg[len(OUTPUT_FLAG) :])
            i += 1
            continue

        if arg in config.compiler_flags_with_value:
            # Skip the flag's own value so it isn't mistaken for a file
            i += 2
            continue

        if arg.startswith("-") or arg.startswith("@"):
            i += 1
            continue

        if config.is_source_file(arg):
            inputs.append(arg)
            input_is_source.append(True)
        elif config.is_intermediate_file(arg):
            inputs.append(arg)
            input_is_source.append(False)
        else:
            logger.debug("Ignoring unrecognized positional argument '%s' (line %s)", arg, invocation.line)
        i += 1

    # Only the last -o counts, like the compiler driver itself
    return BuildStep(invocation, StepKind.COMPILE, tuple(inputs), tuple(outputs[-1:]), tuple(input_is_source), executable)


def _is_archiver_mode_flag(arg: str) -> bool:
    """True for dash-prefixed mode strings such as '-rcs' or '-crsD'."""
    letters = arg[1:]
    return arg.startswith("-") and not arg.startswith("--") and bool(letters) and all(ch in ARCHIVER_MODE_LETTERS for ch in letters)


def _classify_archive(invocation: Invocation, executable: str, args: List[str], config: ClassifierConfig) -> Optional[BuildStep]:
    mode: Optional[str] = None
    positionals: List[str] = []

    i = 0
    while i < len(args):
        arg = args[i]
        if arg in config.archiver_flags_with_value:
            i += 2
            continue
        if mode is None and _is_archiver_mode_flag(arg):
            mode = arg[1:]
            i += 1
            continue
        if arg.startswith("-") or arg.startswith("@"):
            i += 1
            continue
        if mode is None:
            mode = arg
        else:
            positionals.append(arg)
        i += 1

    if mode is None or not set(mode) & ARCHIVER_CREATE_LETTERS:
        logger.debug("Archiver invocation without create mode on line %s: %s", invocation.line, invocation)
        return None
    if not positionals:
        logger.debug("Archiver invocation without archive operand on line %s: %s", invocation.line, invocation)
        return None

    archive, *members = positionals
    return BuildStep(invocation, StepKind.ARCHIVE, tuple(members), (archive,), tuple(False for _ in members), executable)


_HANDLERS: Dict[StepKind, Callable[[Invocation, str, List[str], ClassifierConfig], Optional[BuildStep]]] = {
    StepKind.COMPILE: _classify_compile,
    StepKind.ARCHIVE: _classify_archive,
}


def classify(invocation: Invocation, config: ClassifierConfig = DEFAULT_CONFIG) -> Optional[BuildStep]:
    """Classify one invocation.

    Args:
        invocation: Tokenized command
        config: Classification tables

    Returns:
        A BuildStep for compiler and archiver commands, or None when the
        command is irrelevant to the build graph (mkdir, echo, an archiver
        call that does not create an archive, ...). The returned step may
        have no outputs, e.g. a compile without -o.
    """
    executable, args = _unwrap(invocation, config)
    kind = tool_kind(executable, config)
    handler = _HANDLERS.get(kind)
    if handler is None:
        return None
    return handler(invocation, executable, args, config)


def classify_all(invocations: Sequence[Invocation], config: ClassifierConfig = DEFAULT_CONFIG, include_incomplete: bool = False) -> List[BuildStep]:
    """Classify invocations, keeping only actionable steps unless asked otherwise.

    Args:
        invocations: Tokenized commands in trace order
        config: Classification tables
        include_incomplete: Also return steps that have no output

    Returns:
        Build steps in trace order
    """
    steps: List[BuildStep] = []
    dropped = 0
    for invocation in invocations:
        step = classify(invocation, config)
        if step is None:
            continue
        if not step.has_outputs and not include_incomplete:
            dropped += 1
            logger.debug("Dropping step without output on line %s: %s", invocation.line, invocation)
            continue
        steps.append(step)

    logger.debug("Classified %s build steps from %s invocations (%s without output)", len(steps), len(invocations), dropped)
    return steps


def classify_text(
    text: str,
    dialect: Dialect,
    config: ClassifierConfig = DEFAULT_CONFIG,
    include_incomplete: bool = False,
    warnings: Optional[List[TokenizeWarning]] = None,
) -> List[BuildStep]:
    """Tokenize a trace and classify every invocation in it."""
    return classify_all(tokenize(text, dialect, warnings), config, include_incomplete)


def compile_flags(step: BuildStep, dialect: Dialect, config: ClassifierConfig = DEFAULT_CONFIG) -> str:
    """Return the flags a source file was compiled with.

    Everything on the command line except the inputs, the -o output and the
    compile-only marker and a trailing background &, rendered in the trace's dialect.

    Example:
        g++ -c a.c -o x/a.o -Iinc  ->  '-Iinc'
    """
    _, args = _unwrap(step.invocation, config)
    inputs = set(step.inputs)
    kept: List[str] = []

    i = 0
    while i < len(args):
        arg = args[i]
        if arg == OUTPUT_FLAG:
            i += 2
            continue
        if arg in config.compiler_flags_with_value:
            kept.extend(args[i : i + 2])
            i += 2
            continue
        if arg.startswith(OUTPUT_FLAG) and arg[len(OUTPUT_FLAG) :] in step.outputs:
            i += 1
            continue
        if arg in COMPILE_ONLY_FLAGS or arg in STRUCTURAL_TOKENS or arg in inputs:
            i += 1
            continue
        kept.append(arg)
        i += 1

    return join_arguments(kept, dialect)
