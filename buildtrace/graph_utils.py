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
"""Graph diagnostics over classified build steps using NetworkX.

The flow analyzer walks an output->step map directly. This module builds the
same relationships as an explicit file graph so that cycles and other
anomalies in a trace can be reported and the graph can be exported for
visualization.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

import networkx as nx

from buildtrace.command_classifier import BuildStep

logger = logging.getLogger(__name__)


def build_step_graph(steps: Sequence[BuildStep]) -> "nx.DiGraph[Any]":
    """Build a directed file graph with an edge from every input to every output.

    Nodes carry a 'kind' attribute: 'source' for original source inputs,
    'intermediate' for everything a step produces or consumes otherwise.
    Edges carry the producing step's trace line.

    Args:
        steps: Classified build steps

    Returns:
        NetworkX DiGraph over file paths
    """
    graph: nx.DiGraph[str] = nx.DiGraph()
    for step in steps:
        for output in step.outputs:
            graph.add_node(output, kind="intermediate")
        for path, is_source in zip(step.inputs, step.input_is_source):
            if path not in graph:
                graph.add_node(path, kind="source" if is_source else "intermediate")
            for output in step.outputs:
                graph.add_edge(path, output, line=step.invocation.line, tool=step.kind.value)
    return graph


def find_strongly_connected_components(graph: "nx.DiGraph[Any]") -> Tuple[List[Set[str]], List[str]]:
    """Find strongly connected components (cycles) and self-loops in a directed graph.

    Args:
        graph: NetworkX DiGraph

    Returns:
        Tuple of (cycles, self_loops) where:
        - cycles: List of sets containing files in multi-file cycles
        - self_loops: List of files a step both reads and writes
    """
    cycles = []
    self_loops = []
    for scc in nx.strongly_connected_components(graph):
        if len(scc) > 1:
            cycles.append(scc)
        elif len(scc) == 1:
            node = next(iter(scc))
            if graph.has_edge(node, node):
                self_loops.append(node)

    return cycles, self_loops


def find_step_cycles(steps: Sequence[BuildStep]) -> Tuple[List[Set[str]], List[str]]:
    """Report file cycles in a trace. A well-formed build has none."""
    cycles, self_loops = find_strongly_connected_components(build_step_graph(steps))
    if cycles or self_loops:
        logger.warning("Suspicious build trace: %s cycles and %s self-referencing outputs", len(cycles), len(self_loops))
    return cycles, sorted(self_loops)


def export_graph_to_graphml(graph: "nx.DiGraph[Any]", output_path: str, node_attributes: Optional[Dict[str, Dict[str, Any]]] = None) -> bool:
    """Export graph to GraphML format for visualization.

    Args:
        graph: NetworkX DiGraph
        output_path: Path to output file
        node_attributes: Optional dictionary of node -> {attribute: value} mappings

    Returns:
        True if successful
    """
    try:
        if node_attributes:
            for node, attrs in node_attributes.items():
                if node in graph:
                    for key, value in attrs.items():
                        graph.nodes[node][key] = value

        nx.write_graphml(graph, output_path)
        logger.info("Exported graph to %s", output_path)
        return True
    except (OSError, nx.NetworkXError) as e:
        logger.error("Failed to export graph: %s", e)
        return False
