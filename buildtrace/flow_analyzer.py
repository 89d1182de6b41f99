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
"""Trace terminal build outputs back to their original sources.

A terminal output is a file that some step produces and no step consumes:
a shared library, a static archive or an executable. For every terminal
output the producing steps are walked backward, through any number of
intermediate objects and archives, until inputs are reached that no step
produces. Those inputs are the original sources of the output.
"""

import logging
from typing import Dict, Iterator, List, NamedTuple, Sequence, Set, Tuple
from dataclasses import dataclass

from buildtrace.command_classifier import BuildStep

logger = logging.getLogger(__name__)


class ChainEntry(NamedTuple):
    """One original source and the step that consumed it directly."""

    source: str
    step: BuildStep


@dataclass(frozen=True)
class DependencyChain:
    """Original sources of one terminal output, sorted by source path.

    Attributes:
        output: The terminal output file
        entries: (source, consuming step) pairs sorted by source path
        suspicious: True if the traversal ran into a cycle in the trace
    """

    output: str
    entries: Tuple[ChainEntry, ...]
    suspicious: bool = False

    def __iter__(self) -> Iterator[ChainEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def sources(self) -> List[str]:
        return [entry.source for entry in self.entries]


def build_producer_map(steps: Sequence[BuildStep]) -> Dict[str, BuildStep]:
    """Map every output path to the step that produced it.

    If a trace produces the same file twice the first producer is kept.
    """
    producers: Dict[str, BuildStep] = {}
    for step in steps:
        for output in step.outputs:
            existing = producers.get(output)
            if existing is None:
                producers[output] = step
            elif existing is not step:
                logger.warning(
                    "Output %s is produced on line %s and again on line %s; keeping the first", output, existing.invocation.line, step.invocation.line
                )
    return producers


def find_terminal_outputs(steps: Sequence[BuildStep]) -> List[str]:
    """Return outputs that no other step consumes, in order of first appearance."""
    consumed: Set[str] = set()
    for step in steps:
        # An archive listing itself as a member still counts as terminal
        consumed.update(path for path in step.inputs if path not in step.outputs)

    terminal: List[str] = []
    seen: Set[str] = set()
    for step in steps:
        for output in step.outputs:
            if output not in consumed and output not in seen:
                seen.add(output)
                terminal.append(output)
    return terminal


def trace_output(output: str, producers: Dict[str, BuildStep]) -> DependencyChain:
    """Walk backward from one output to its original sources.

    Args:
        output: Output path to start from (must be in producers)
        producers: Output -> producing step map from build_producer_map()

    Returns:
        DependencyChain for the output
    """
    found: List[ChainEntry] = []
    recorded: Set[Tuple[str, int]] = set()
    visited: Set[str] = set()
    on_path: Set[str] = set()
    suspicious = False

    def visit(path: str) -> None:
        nonlocal suspicious
        if path in visited:
            if path in on_path:
                suspicious = True
                logger.warning("Suspicious cycle in build trace: %s depends on itself (reached from %s)", path, output)
            else:
                logger.debug("Intermediate %s already traced for %s", path, output)
            return

        visited.add(path)
        on_path.add(path)
        step = producers[path]
        for input_path in step.inputs:
            if input_path in producers:
                visit(input_path)
            elif (input_path, id(step)) not in recorded:
                recorded.add((input_path, id(step)))
                found.append(ChainEntry(input_path, step))
        on_path.discard(path)

    visit(output)

    # Stable sort: a source consumed by several steps keeps trace order
    found.sort(key=lambda entry: entry.source)
    return DependencyChain(output, tuple(found), suspicious)


def analyze(steps: Sequence[BuildStep]) -> Dict[str, DependencyChain]:
    """Compute the dependency chain of every terminal output.

    Args:
        steps: Actionable build steps in trace order

    Returns:
        Terminal output -> DependencyChain, in order of first appearance

    Example:
        For "g++ -c a.c -o a.o" followed by "g++ a.o -o a.so" the result has
        one key, 'a.so', whose chain is [(a.c, <compile step>)].
    """
    producers = build_producer_map(steps)
    terminal = find_terminal_outputs(steps)

    chains: Dict[str, DependencyChain] = {}
    for output in terminal:
        chains[output] = trace_output(output, producers)

    suspicious = sum(1 for chain in chains.values() if chain.suspicious)
    logger.debug("Traced %s terminal outputs from %s steps (%s suspicious)", len(chains), len(steps), suspicious)
    return chains
