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
"""Policy tables for command classification.

Which executables are compilers or archivers, which flags consume the next
argument, and which file extensions are C-like or C++-like are all observed
from real build traces rather than taken from a formal description of any
compiler's command line. They live here as data so new compiler front ends
can be supported by extending a ClassifierConfig instead of changing the
classifier itself.
"""

import os
from typing import FrozenSet, Iterable, Optional, Tuple
from dataclasses import dataclass, field, replace

# Build wrappers that prefix the real compiler (NDK_CCACHE=ccache, etc.)
BUILD_WRAPPERS = ("ccache", "distcc", "icecc", "sccache")

# Suffixes stripped from executable names before matching
EXECUTABLE_SUFFIXES = (".exe", ".cmd", ".bat")

# Executables that are never build steps, checked before the patterns below
# so that e.g. 'tar' is not taken for an archiver.
IGNORED_TOOLS = (
    "android",  # "Android NDK: WARNING: ..." lines
    "bcc_compat",  # RenderScript
    "llvm-rs-cc",  # RenderScript
    "rm",
    "cd",
    "cp",
    "md",
    "del",
    "copy",
    "echo",
    "mkdir",
    "install",
    "make",
    "tar",
    "jar",
    "strip",
    "*-strip",
    "clang-tidy",
    "clang-format",
    "*-ranlib",
    "ranlib",
)

# fnmatch patterns on the lower-cased executable basename
ARCHIVER_PATTERNS = ("*ar",)
COMPILER_PATTERNS = ("*gcc*", "*g++*", "*clang*", "*clang++*", "cc", "c++", "*-cc", "*-c++")

# Compiler flags whose value is the following argument when written bare
# (e.g. "-I foo" but not "-Ifoo").
COMPILER_FLAGS_WITH_VALUE = (
    "-D",
    "-U",
    "-I",
    "-F",
    "-L",
    "-l",
    "-u",
    "-T",
    "-B",
    "-e",
    "-z",
    "-x",
    "-MF",
    "-MT",
    "-MQ",
    "-MJ",
    "-include",
    "-imacros",
    "-isystem",
    "-iquote",
    "-idirafter",
    "-iprefix",
    "-iwithprefix",
    "-iwithprefixbefore",
    "-isysroot",
    "-target",
    "-gcc-toolchain",
    "-arch",
    "-aux-info",
    "-Xassembler",
    "-Xlinker",
    "-Xpreprocessor",
    "-Xclang",
    "--sysroot",
    "--param",
    "--dependency-file",
)

OUTPUT_FLAG = "-o"
COMPILE_ONLY_FLAGS = ("-c",)
# Shell job-control tokens the tokenizer keeps as trailing arguments
STRUCTURAL_TOKENS = ("&",)

# Archiver options whose value is the following argument
ARCHIVER_FLAGS_WITH_VALUE = ("--plugin", "--target", "--output", "-X")

# Letters that may appear in an archiver operation/modifier string, and the
# subset that makes the invocation create or replace an archive.
ARCHIVER_MODE_LETTERS = frozenset("dmpqrstxabcDfilNoOPSTuUvV")
ARCHIVER_CREATE_LETTERS = frozenset("crq")

# Source extensions, partitioned by language family. Matching is case
# sensitive: 'C' is C++ while 'c' is C.
C_EXTENSIONS = ("c", "s", "S", "asm")
CPP_EXTENSIONS = ("cc", "cp", "cpp", "cxx", "c++", "C", "CPP", "CXX")

# Intermediate artifacts a compiler driver may consume while linking
INTERMEDIATE_EXTENSIONS = ("o", "obj", "lo", "a", "lib", "so", "dylib", "dll")


def file_extension(path: str) -> str:
    """Return the extension of path without the dot ('' if there is none).

    Both '/' and '\\' are treated as directory separators so Windows traces
    are handled the same way on every host.
    """
    basename = path.replace("\\", "/").rsplit("/", 1)[-1]
    root, ext = os.path.splitext(basename)
    if not root:
        return ""
    return ext[1:]


@dataclass(frozen=True)
class ClassifierConfig:
    """Immutable bundle of the tables the classifier and builder consult.

    Use extend() to add entries for a new compiler family; the defaults are
    never mutated.
    """

    build_wrappers: Tuple[str, ...] = BUILD_WRAPPERS
    ignored_tools: Tuple[str, ...] = IGNORED_TOOLS
    compiler_patterns: Tuple[str, ...] = COMPILER_PATTERNS
    archiver_patterns: Tuple[str, ...] = ARCHIVER_PATTERNS
    compiler_flags_with_value: FrozenSet[str] = frozenset(COMPILER_FLAGS_WITH_VALUE)
    archiver_flags_with_value: FrozenSet[str] = frozenset(ARCHIVER_FLAGS_WITH_VALUE)
    c_extensions: Tuple[str, ...] = C_EXTENSIONS
    cpp_extensions: Tuple[str, ...] = CPP_EXTENSIONS
    intermediate_extensions: Tuple[str, ...] = INTERMEDIATE_EXTENSIONS
    _source_extensions: FrozenSet[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "_source_extensions", frozenset(self.c_extensions) | frozenset(self.cpp_extensions))

    def is_source_file(self, path: str) -> bool:
        return file_extension(path) in self._source_extensions

    def is_intermediate_file(self, path: str) -> bool:
        return file_extension(path) in self.intermediate_extensions

    def language_of(self, extension: str) -> Optional[str]:
        """Return 'c', 'c++' or None for an extension.

        An extension listed in both families is C-like: the first table wins.
        """
        if extension in self.c_extensions:
            return "c"
        if extension in self.cpp_extensions:
            return "c++"
        return None

    def extend(
        self,
        build_wrappers: Iterable[str] = (),
        ignored_tools: Iterable[str] = (),
        compiler_patterns: Iterable[str] = (),
        archiver_patterns: Iterable[str] = (),
        compiler_flags_with_value: Iterable[str] = (),
        archiver_flags_with_value: Iterable[str] = (),
        c_extensions: Iterable[str] = (),
        cpp_extensions: Iterable[str] = (),
        intermediate_extensions: Iterable[str] = (),
    ) -> "ClassifierConfig":
        """Return a copy of this config with extra table entries appended."""
        return replace(
            self,
            build_wrappers=self.build_wrappers + tuple(build_wrappers),
            ignored_tools=self.ignored_tools + tuple(ignored_tools),
            compiler_patterns=self.compiler_patterns + tuple(compiler_patterns),
            archiver_patterns=self.archiver_patterns + tuple(archiver_patterns),
            compiler_flags_with_value=self.compiler_flags_with_value | frozenset(compiler_flags_with_value),
            archiver_flags_with_value=self.archiver_flags_with_value | frozenset(archiver_flags_with_value),
            c_extensions=self.c_extensions + tuple(c_extensions),
            cpp_extensions=self.cpp_extensions + tuple(cpp_extensions),
            intermediate_extensions=self.intermediate_extensions + tuple(intermediate_extensions),
        )


DEFAULT_CONFIG = ClassifierConfig()
