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
"""Colored terminal output for the buildTrace command-line tools (colorama)."""

import os
import sys
import logging
from typing import Optional, TextIO

logger = logging.getLogger(__name__)

try:
    from colorama import Fore, Style, init

    # Keep escape codes when stdout is piped; should_use_color() decides instead
    init(autoreset=False, strip=False)
    COLORAMA_AVAILABLE = True
except ImportError:
    COLORAMA_AVAILABLE = False
    logger.debug("colorama not available, using fallback")


class Colors:
    """Color codes for terminal output (empty strings when disabled)."""

    RED = Fore.RED if COLORAMA_AVAILABLE else ""
    GREEN = Fore.GREEN if COLORAMA_AVAILABLE else ""
    YELLOW = Fore.YELLOW if COLORAMA_AVAILABLE else ""
    CYAN = Fore.CYAN if COLORAMA_AVAILABLE else ""
    WHITE = Fore.WHITE if COLORAMA_AVAILABLE else ""
    RESET = Style.RESET_ALL if COLORAMA_AVAILABLE else ""
    BRIGHT = Style.BRIGHT if COLORAMA_AVAILABLE else ""
    DIM = Style.DIM if COLORAMA_AVAILABLE else ""

    @staticmethod
    def disable() -> None:
        """Disable all color output."""
        for attr in dir(Colors):
            if not attr.startswith("_") and attr != "disable":
                setattr(Colors, attr, "")


def colored(text: str, color: str = "", style: str = "") -> str:
    """Wrap text in color codes, or return it unchanged when color is off."""
    if not color:
        return text
    return f"{style}{color}{text}{Colors.RESET}"


def print_colored(text: str, color: str = "", style: str = "", file: Optional[TextIO] = None) -> None:
    print(colored(text, color, style), file=file if file is not None else sys.stdout)


def print_success(text: str, file: Optional[TextIO] = None) -> None:
    print_colored(text, Colors.GREEN, file=file)


def print_info(text: str, file: Optional[TextIO] = None) -> None:
    print_colored(text, Colors.CYAN, file=file)


def print_error(text: str, file: Optional[TextIO] = None, prefix: bool = True) -> None:
    """Print error message in red to stderr.

    Args:
        text: Error message to print
        file: File object (default: sys.stderr)
        prefix: If True, prepend "Error: " to message
    """
    message = f"Error: {text}" if prefix else text
    print_colored(message, Colors.RED, file=file if file is not None else sys.stderr)


def print_warning(text: str, file: Optional[TextIO] = None, prefix: bool = True) -> None:
    """Print warning message in yellow to stderr."""
    message = f"Warning: {text}" if prefix else text
    print_colored(message, Colors.YELLOW, file=file if file is not None else sys.stderr)


def should_use_color(no_color: bool = False) -> bool:
    """Decide whether to emit color codes.

    Args:
        no_color: Set by --no-color

    Returns:
        True if colorama is available, stdout is a TTY and NO_COLOR is unset
    """
    if no_color or not COLORAMA_AVAILABLE:
        return False
    if os.environ.get("NO_COLOR"):
        return False
    return sys.stdout.isatty()
