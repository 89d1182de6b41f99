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
"""Shared constants for buildTrace tools.

This module provides centralized constants and the exception hierarchy used
across the trace parser, the classifier, the flow analyzer and the CLI.
"""

# =============================================================================
# Exit Codes
# =============================================================================

EXIT_SUCCESS = 0
EXIT_INVALID_ARGS = 1
EXIT_RUNTIME_ERROR = 2
EXIT_KEYBOARD_INTERRUPT = 130

# =============================================================================
# Model Key Constants
# =============================================================================

TOOLCHAIN_KEY_PREFIX = "toolchain"  # Toolchain keys look like toolchain-<abi>
LIBRARY_KEY_SEPARATOR = "-"  # Library keys look like <artifact>-<variant>-<abi>
LIBRARY_NAME_PREFIX = "lib"  # Stripped from output basenames (libfoo.so -> foo)
CLEAN_COMMAND_SUFFIX = "clean"  # Appended to the build command for clean commands

# =============================================================================
# Display Limits
# =============================================================================

MAX_LIBRARIES_DISPLAY = 50  # Maximum libraries to list in the CLI summary
MAX_SOURCES_DISPLAY = 10  # Maximum source files to list per library
MAX_FLAGS_DISPLAY_CHARS = 120  # Truncate flag strings after this many characters
MAX_CYCLES_DISPLAY = 20  # Maximum suspicious cycles to display

# =============================================================================
# Exception Classes
# =============================================================================


class BuildTraceError(Exception):
    """Base exception for all buildTrace errors.

    All buildTrace exceptions carry an exit_code attribute that indicates
    what exit code the program should use when this error is caught at the
    main entry point.
    """

    def __init__(self, message: str, exit_code: int = EXIT_RUNTIME_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


# Validation errors (EXIT_INVALID_ARGS)
class ValidationError(BuildTraceError):
    """Raised when input validation fails (arguments, paths, etc)."""

    def __init__(self, message: str):
        super().__init__(message, EXIT_INVALID_ARGS)


class ArgumentError(ValidationError):
    """Raised when command-line or API arguments are invalid."""


class TraceFileError(ValidationError):
    """Raised when a captured build trace cannot be read."""


# Analysis/processing errors (EXIT_RUNTIME_ERROR)
class AnalysisError(BuildTraceError):
    """Raised when analysis or processing operations fail."""


class LibraryCollisionError(AnalysisError):
    """Raised when two incompatible libraries are registered under one key.

    Attributes:
        key: The colliding library key
    """

    def __init__(self, key: str, reason: str):
        super().__init__(f"Library key collision for '{key}': {reason}")
        self.key = key
        self.reason = reason
