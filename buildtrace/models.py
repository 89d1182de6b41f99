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
"""Data model of the consolidated native build configuration."""

from types import MappingProxyType
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple
from dataclasses import dataclass

ROLE_C = "c"
ROLE_CPP = "c++"


@dataclass(frozen=True)
class SourceFileEntry:
    """A source file and the flags it was compiled with."""

    src: str
    flags: str

    def to_dict(self) -> Dict[str, Any]:
        return {"src": self.src, "flags": self.flags}


@dataclass(frozen=True)
class ToolchainDescriptor:
    """Compiler executables used for one ABI.

    Attributes:
        key: Synthesized key, e.g. 'toolchain-x86_64'
        c_compiler: Compiler that built C-like sources, if any
        cpp_compiler: Compiler that built C++-like sources, if any
    """

    key: str
    c_compiler: Optional[str] = None
    cpp_compiler: Optional[str] = None

    def compilers(self) -> Dict[str, str]:
        """Return role -> compiler path for the roles this toolchain covers."""
        result = {}
        if self.c_compiler is not None:
            result[ROLE_C] = self.c_compiler
        if self.cpp_compiler is not None:
            result[ROLE_CPP] = self.cpp_compiler
        return result

    def to_dict(self) -> Dict[str, Any]:
        result = {}
        if self.c_compiler is not None:
            result["cCompilerExecutable"] = self.c_compiler
        if self.cpp_compiler is not None:
            result["cppCompilerExecutable"] = self.cpp_compiler
        return result


@dataclass(frozen=True)
class LibraryDescriptor:
    """One build artifact of one variant and ABI.

    Attributes:
        key: Synthesized key '<artifact>-<variant>-<abi>'
        abi: ABI token taken from the output's directory name
        artifact_name: Output basename without extension and 'lib' prefix
        variant: Build variant name, e.g. 'debug'
        build_command: Command that builds this library, passed through verbatim
        toolchain: Key of the ToolchainDescriptor used
        output: Output file path as written in the trace
        files: Source entries sorted by source path
        extensions: Source file extensions seen in this library
    """

    key: str
    abi: str
    artifact_name: str
    variant: str
    build_command: str
    toolchain: str
    output: str
    files: Tuple[SourceFileEntry, ...]
    extensions: FrozenSet[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "abi": self.abi,
            "artifactName": self.artifact_name,
            "buildType": self.variant,
            "buildCommand": self.build_command,
            "toolchain": self.toolchain,
            "output": self.output,
            "files": [entry.to_dict() for entry in self.files],
        }


@dataclass(frozen=True)
class AggregateBuildConfig:
    """Immutable snapshot of everything a NativeBuildConfigBuilder collected.

    Library keys and toolchain keys are unique within one snapshot. The
    mappings are read-only views.
    """

    build_files: Tuple[str, ...]
    clean_commands: Tuple[str, ...]
    libraries: Mapping[str, LibraryDescriptor]
    toolchains: Mapping[str, ToolchainDescriptor]
    c_file_extensions: FrozenSet[str]
    cpp_file_extensions: FrozenSet[str]

    def __post_init__(self) -> None:
        object.__setattr__(self, "libraries", MappingProxyType(dict(self.libraries)))
        object.__setattr__(self, "toolchains", MappingProxyType(dict(self.toolchains)))

    def library_for_output(self, output: str) -> Optional[LibraryDescriptor]:
        for library in self.libraries.values():
            if library.output == output:
                return library
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to plain builtins for JSON or any other serializer.

        Returns:
            Dictionary with sorted keys and extension lists
        """
        return {
            "buildFiles": list(self.build_files),
            "cleanCommands": list(self.clean_commands),
            "libraries": {key: self.libraries[key].to_dict() for key in sorted(self.libraries)},
            "toolchains": {key: self.toolchains[key].to_dict() for key in sorted(self.toolchains)},
            "cFileExtensions": sorted(self.c_file_extensions),
            "cppFileExtensions": sorted(self.cpp_file_extensions),
        }
