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
"""Fold per-variant trace analyses into one AggregateBuildConfig.

Usage:
    builder = NativeBuildConfigBuilder(build_files=["jni/Android.mk"])
    builder.add_variant("ndk-build NDK_DEBUG=1", "debug", trace_text, Dialect.POSIX)
    config = builder.build()

Each add_variant() call tokenizes, classifies and flow-analyzes one trace,
then registers one library per terminal output. Toolchains are shared
between libraries whose compilers are identical.
"""

import os
import logging
import concurrent.futures
from typing import Dict, List, NamedTuple, Optional, Sequence, Set, Tuple
from dataclasses import dataclass, field

from buildtrace import flow_analyzer
from buildtrace.command_classifier import BuildStep, StepKind, classify_text, compile_flags
from buildtrace.command_line import Dialect, TokenizeWarning
from buildtrace.constants import (
    CLEAN_COMMAND_SUFFIX,
    LIBRARY_KEY_SEPARATOR,
    LIBRARY_NAME_PREFIX,
    TOOLCHAIN_KEY_PREFIX,
    LibraryCollisionError,
)
from buildtrace.flag_tables import DEFAULT_CONFIG, ClassifierConfig, file_extension
from buildtrace.flow_analyzer import DependencyChain
from buildtrace.models import ROLE_C, ROLE_CPP, AggregateBuildConfig, LibraryDescriptor, SourceFileEntry, ToolchainDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalyzedVariant:
    """Result of running tokenizer, classifier and flow analyzer over one trace.

    Attributes:
        build_command: Command the caller used to produce the trace
        variant: Variant name, e.g. 'debug'
        dialect: Quoting dialect the trace was tokenized with
        chains: Terminal output -> DependencyChain
        steps: Actionable build steps the chains were traced from
        warnings: Recoverable tokenizer warnings
    """

    build_command: str
    variant: str
    dialect: Dialect
    chains: Dict[str, DependencyChain]
    steps: Tuple[BuildStep, ...] = ()
    warnings: Tuple[TokenizeWarning, ...] = ()

    @property
    def suspicious_outputs(self) -> List[str]:
        return [output for output, chain in self.chains.items() if chain.suspicious]


class VariantRequest(NamedTuple):
    """Arguments of one add_variant() call, for analyze_variants_parallel()."""

    build_command: str
    variant: str
    raw_log: str
    dialect: Dialect


def analyze_variant(build_command: str, variant: str, raw_log: str, dialect: Dialect, config: ClassifierConfig = DEFAULT_CONFIG) -> AnalyzedVariant:
    """Run the analysis stages over one trace without touching any builder."""
    warnings: List[TokenizeWarning] = []
    steps = classify_text(raw_log, dialect, config, warnings=warnings)
    chains = flow_analyzer.analyze(steps)
    return AnalyzedVariant(build_command, variant, dialect, chains, tuple(steps), tuple(warnings))


def _split_path(path: str) -> Tuple[str, str]:
    """Split into (directory, basename) accepting both '/' and '\\'."""
    head, _, tail = path.replace("\\", "/").rpartition("/")
    return head, tail


def abi_of(output: str) -> str:
    """Name of the directory holding output ('' if there is none).

    Example:
        obj/local/arm64-v8a/libhello-jni.so -> 'arm64-v8a'
    """
    head, _ = _split_path(output)
    return head.rsplit("/", 1)[-1]


def artifact_name_of(output: str) -> str:
    """Output basename without extension and without a leading 'lib'.

    Example:
        obj/local/arm64-v8a/libhello-jni.so -> 'hello-jni'
    """
    _, basename = _split_path(output)
    name = os.path.splitext(basename)[0]
    if name.startswith(LIBRARY_NAME_PREFIX) and len(name) > len(LIBRARY_NAME_PREFIX):
        name = name[len(LIBRARY_NAME_PREFIX) :]
    return name


def library_key(artifact_name: str, variant: str, abi: str) -> str:
    return LIBRARY_KEY_SEPARATOR.join((artifact_name, variant, abi))


def toolchain_key(abi: str) -> str:
    return f"{TOOLCHAIN_KEY_PREFIX}-{abi}"


@dataclass
class _PendingLibrary:
    """Mutable library state owned by one builder until build()."""

    key: str
    abi: str
    artifact_name: str
    variant: str
    build_command: str
    toolchain: str
    output: str
    files: Dict[str, str] = field(default_factory=dict)
    extensions: Set[str] = field(default_factory=set)

    def freeze(self) -> LibraryDescriptor:
        entries = tuple(SourceFileEntry(src, self.files[src]) for src in sorted(self.files))
        return LibraryDescriptor(
            self.key, self.abi, self.artifact_name, self.variant, self.build_command, self.toolchain, self.output, entries, frozenset(self.extensions)
        )


class NativeBuildConfigBuilder:
    """Accumulates analyzed variants and produces an AggregateBuildConfig.

    A builder is owned by one caller and fed sequentially. build() may be
    called at any time and returns an independent immutable snapshot.
    """

    def __init__(self, build_files: Sequence[str] = (), config: ClassifierConfig = DEFAULT_CONFIG):
        self.config = config
        self.build_files: List[str] = list(build_files)
        self.variants: List[AnalyzedVariant] = []
        self.warnings: List[TokenizeWarning] = []
        self.suspicious_outputs: List[str] = []
        self._clean_commands: List[str] = []
        self._libraries: Dict[str, _PendingLibrary] = {}
        self._toolchains: Dict[str, Dict[str, str]] = {}
        # (role, compiler path) -> toolchain key
        self._toolchain_index: Dict[Tuple[str, str], str] = {}
        self._extension_roles: Dict[str, str] = {}
        self._collisions: List[Tuple[str, str]] = []

    def add_variant(self, build_command: str, variant_name: str, raw_log: str, dialect: Dialect) -> "NativeBuildConfigBuilder":
        """Analyze one (variant, ABI) trace and fold it into the aggregate.

        Args:
            build_command: Command that produced the trace, stored verbatim
            variant_name: Variant name used in library keys
            raw_log: Captured dry-run output of the build driver
            dialect: Quoting dialect of the trace

        Returns:
            self, so calls can be chained
        """
        return self.add_analyzed_variant(analyze_variant(build_command, variant_name, raw_log, dialect, self.config))

    def add_analyzed_variant(self, analyzed: AnalyzedVariant) -> "NativeBuildConfigBuilder":
        """Fold an already analyzed variant into the aggregate."""
        self.variants.append(analyzed)
        self.warnings.extend(analyzed.warnings)
        self.suspicious_outputs.extend(analyzed.suspicious_outputs)

        clean_command = f"{analyzed.build_command} {CLEAN_COMMAND_SUFFIX}"
        if clean_command not in self._clean_commands:
            self._clean_commands.append(clean_command)

        for output, chain in analyzed.chains.items():
            self._add_library(analyzed, output, chain)

        logger.info("Variant %s: %s terminal outputs", analyzed.variant, len(analyzed.chains))
        return self

    def _chain_compilers(self, chain: DependencyChain) -> Dict[str, str]:
        """Compiler of the first compile step per role, in chain order."""
        compilers: Dict[str, str] = {}
        for entry in chain:
            if entry.step.kind is not StepKind.COMPILE or not entry.step.is_source_input(entry.source):
                continue
            role = self._classify_extension(file_extension(entry.source))
            if role is not None and role not in compilers:
                compilers[role] = entry.step.executable
        return compilers

    def _classify_extension(self, extension: str) -> Optional[str]:
        role = self._extension_roles.get(extension)
        if role is None:
            role = self.config.language_of(extension)
            if role is not None:
                self._extension_roles[extension] = role
        return role

    def _resolve_toolchain(self, abi: str, compilers: Dict[str, str]) -> str:
        """Return the key of a toolchain matching compilers, registering one if needed."""
        candidates = [self._toolchain_index[item] for item in compilers.items() if item in self._toolchain_index]
        candidates.append(toolchain_key(abi))

        for key in candidates:
            existing = self._toolchains.get(key)
            if existing is None:
                continue
            if all(existing.get(role, path) == path for role, path in compilers.items()):
                self._register_toolchain(key, compilers)
                return key

        key = toolchain_key(abi)
        suffix = 2
        while key in self._toolchains:
            key = f"{toolchain_key(abi)}{LIBRARY_KEY_SEPARATOR}{suffix}"
            suffix += 1
        self._register_toolchain(key, compilers)
        return key

    def _register_toolchain(self, key: str, compilers: Dict[str, str]) -> None:
        roles = self._toolchains.setdefault(key, {})
        for role, path in compilers.items():
            roles.setdefault(role, path)
            self._toolchain_index.setdefault((role, path), key)

    def _add_library(self, analyzed: AnalyzedVariant, output: str, chain: DependencyChain) -> None:
        abi = abi_of(output)
        artifact = artifact_name_of(output)
        key = library_key(artifact, analyzed.variant, abi)
        toolchain = self._resolve_toolchain(abi, self._chain_compilers(chain))

        library = self._libraries.get(key)
        if library is None:
            library = _PendingLibrary(key, abi, artifact, analyzed.variant, analyzed.build_command, toolchain, output)
            self._libraries[key] = library
        elif library.output != output or library.toolchain != toolchain:
            reason = f"output {library.output} with {library.toolchain} conflicts with output {output} with {toolchain}"
            logger.error("Library key collision for %s: %s", key, reason)
            self._collisions.append((key, reason))
            return
        else:
            logger.debug("Merging library %s from another trace", key)

        for entry in chain:
            if not entry.step.is_source_input(entry.source):
                logger.debug("Skipping non-source leaf %s of %s", entry.source, output)
                continue
            flags = compile_flags(entry.step, analyzed.dialect, self.config)
            existing = library.files.get(entry.source)
            if existing is None:
                library.files[entry.source] = flags
            elif existing != flags:
                logger.debug("Source %s of %s seen again with different flags; keeping the first", entry.source, key)

            extension = file_extension(entry.source)
            if self._classify_extension(extension) is not None:
                library.extensions.add(extension)

    def build(self) -> AggregateBuildConfig:
        """Return an immutable snapshot of the aggregate.

        Raises:
            LibraryCollisionError: If two incompatible libraries share a key
        """
        if self._collisions:
            key, reason = self._collisions[0]
            raise LibraryCollisionError(key, reason)

        c_extensions = frozenset(ext for ext, role in self._extension_roles.items() if role == ROLE_C)
        cpp_extensions = frozenset(ext for ext, role in self._extension_roles.items() if role == ROLE_CPP)
        toolchains = {
            key: ToolchainDescriptor(key, roles.get(ROLE_C), roles.get(ROLE_CPP)) for key, roles in self._toolchains.items()
        }
        libraries = {key: library.freeze() for key, library in self._libraries.items()}
        return AggregateBuildConfig(tuple(self.build_files), tuple(self._clean_commands), libraries, toolchains, c_extensions, cpp_extensions)


def analyze_variants_parallel(
    requests: Sequence[VariantRequest],
    max_workers: Optional[int] = None,
    builder: Optional[NativeBuildConfigBuilder] = None,
) -> NativeBuildConfigBuilder:
    """Analyze traces concurrently, then fold them into a builder in request order.

    Only the per-trace analysis runs in the pool. The fold happens in the
    calling thread, so the builder needs no locking.

    Args:
        requests: One VariantRequest per (variant, ABI) trace
        max_workers: Thread pool size (default: concurrent.futures default)
        builder: Builder to fold into (default: a new one)

    Returns:
        The builder the results were folded into
    """
    if builder is None:
        builder = NativeBuildConfigBuilder()
    config = builder.config

    def run(request: VariantRequest) -> AnalyzedVariant:
        return analyze_variant(request.build_command, request.variant, request.raw_log, request.dialect, config)

    with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as threadpool:
        results = list(threadpool.map(run, requests))

    for analyzed in results:
        builder.add_analyzed_variant(analyzed)
    return builder
