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
"""Tokenizer for build-driver dry-run traces.

Splits the text printed by a native build driver (``ndk-build -n -B``,
``make -n``) into discrete command invocations. Two quoting dialects are
supported:

- POSIX: backslash escapes the next character (also inside double quotes),
  double quotes group whitespace, single quotes group whitespace and
  disable backslash escapes.
- WINDOWS: the Microsoft C runtime argv rules, where only backslash runs
  that precede a double quote are collapsed.

Invocations are separated by newlines and ``&&``. In the POSIX dialect a
lone ``&`` followed by whitespace also separates invocations, and is kept as
a literal trailing ``&`` argument of the invocation it terminates.
"""

import os
import enum
import shlex
import logging
import subprocess
from typing import Callable, Dict, Iterable, List, Optional, Tuple
from dataclasses import dataclass, field

from buildtrace.constants import ArgumentError

logger = logging.getLogger(__name__)

__all__ = ["Dialect", "Invocation", "TokenizeWarning", "tokenize", "quote_argument", "join_arguments"]


class Dialect(enum.Enum):
    """Quoting and escaping rule set used to split a trace."""

    POSIX = "posix"
    WINDOWS = "windows"

    @classmethod
    def for_host(cls) -> "Dialect":
        """Return the dialect matching the shell of the current host."""
        return cls.WINDOWS if os.name == "nt" else cls.POSIX

    @classmethod
    def parse(cls, name: str) -> "Dialect":
        """Parse a dialect name such as 'posix', 'windows' or 'host'.

        Raises:
            ArgumentError: If the name is not a known dialect
        """
        normalized = (name or "").strip().lower()
        if normalized == "host":
            return cls.for_host()
        for dialect in cls:
            if dialect.value == normalized:
                return dialect
        raise ArgumentError(f"Unknown dialect '{name}' (expected one of: posix, windows, host)")


@dataclass(frozen=True)
class Invocation:
    """One parsed shell command: executable plus ordered arguments.

    Attributes:
        executable: First token of the command
        args: Remaining tokens in original order
        line: 1-based line of the trace the command started on (not part of equality)
    """

    executable: str
    args: Tuple[str, ...] = ()
    line: int = field(default=0, compare=False)

    def tokens(self) -> List[str]:
        """Return executable followed by arguments."""
        return [self.executable, *self.args]

    def __str__(self) -> str:
        return shlex.join(self.tokens())


@dataclass(frozen=True)
class TokenizeWarning:
    """Recoverable problem found while splitting a trace.

    Attributes:
        line: 1-based line the problem was detected on
        token: The token that was being built when the problem was found
        message: Human readable description
    """

    line: int
    token: str
    message: str


class _InvocationCollector:
    """Accumulates characters into tokens and tokens into invocations."""

    def __init__(self, warnings: Optional[List[TokenizeWarning]]):
        self.invocations: List[Invocation] = []
        self.warnings = warnings
        self.line = 1
        self._chars: List[str] = []
        self._in_token = False
        self._tokens: List[str] = []
        self._start_line = 1

    def add(self, text: str) -> None:
        if not self._tokens and not self._in_token:
            self._start_line = self.line
        self._chars.append(text)
        self._in_token = True

    def open_token(self) -> None:
        """Mark a token as started even if it stays empty (e.g. "")."""
        if not self._tokens and not self._in_token:
            self._start_line = self.line
        self._in_token = True

    def end_token(self) -> None:
        if self._in_token:
            self._tokens.append("".join(self._chars))
        self._chars = []
        self._in_token = False

    def add_literal_token(self, token: str) -> None:
        self.end_token()
        if not self._tokens:
            self._start_line = self.line
        self._tokens.append(token)

    def end_invocation(self) -> None:
        self.end_token()
        if self._tokens:
            executable, *args = self._tokens
            self.invocations.append(Invocation(executable, tuple(args), self._start_line))
        self._tokens = []

    def unterminated(self, quote: str) -> None:
        partial = "".join(self._chars)
        message = f"Unterminated {quote} quote on line {self.line}; treating remainder as one token"
        logger.warning("%s: %r", message, partial)
        if self.warnings is not None:
            self.warnings.append(TokenizeWarning(self.line, partial, message))


def _separator_length(text: str, i: int, allow_single_ampersand: bool) -> Tuple[int, bool]:
    """Return (length, keeps_ampersand) for an unquoted separator at text[i].

    length is 0 when text[i] does not start a separator.
    """
    ch = text[i]
    if ch == "\n":
        return 1, False
    if ch == "&":
        if text.startswith("&&", i):
            return 2, False
        if allow_single_ampersand and (i + 1 >= len(text) or text[i + 1].isspace()):
            return 1, True
    return 0, False


def _scan_posix(text: str, out: _InvocationCollector) -> None:
    """Split text with POSIX shell quoting."""
    quote = ""
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if ch == "\\" and quote != "'":
            if i + 1 >= n:
                out.add(ch)
                i += 1
                continue
            nxt = text[i + 1]
            if nxt == "\n":
                # Line continuation
                out.line += 1
                i += 2
                continue
            out.add(nxt)
            i += 2
            continue

        if quote:
            if ch == quote:
                quote = ""
            elif ch == "\n":
                out.unterminated(quote)
                quote = ""
                out.end_invocation()
                out.line += 1
            else:
                out.add(ch)
            i += 1
            continue

        if ch in ('"', "'"):
            quote = ch
            out.open_token()
            i += 1
            continue

        length, keeps_ampersand = _separator_length(text, i, allow_single_ampersand=True)
        if length:
            if keeps_ampersand:
                out.add_literal_token("&")
            out.end_invocation()
            if ch == "\n":
                out.line += 1
            i += length
            continue

        if ch.isspace():
            out.end_token()
        else:
            out.add(ch)
        i += 1

    if quote:
        out.unterminated(quote)


def _scan_windows(text: str, out: _InvocationCollector) -> None:
    """Split text with the Microsoft C runtime argv rules."""
    in_quote = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]

        if ch == "\\":
            j = i
            while j < n and text[j] == "\\":
                j += 1
            count = j - i
            if j < n and text[j] == '"':
                # 2n backslashes + quote -> n backslashes, quote toggles.
                # 2n+1 backslashes + quote -> n backslashes + literal quote.
                out.add("\\" * (count // 2))
                if count % 2:
                    out.add('"')
                    j += 1
            else:
                out.add("\\" * count)
            i = j
            continue

        if ch == '"':
            out.open_token()
            if in_quote and i + 1 < n and text[i + 1] == '"':
                out.add('"')
                i += 2
                continue
            in_quote = not in_quote
            i += 1
            continue

        if in_quote:
            if ch == "\n":
                out.unterminated('"')
                in_quote = False
                out.end_invocation()
                out.line += 1
            else:
                out.add(ch)
            i += 1
            continue

        length, _ = _separator_length(text, i, allow_single_ampersand=False)
        if length:
            out.end_invocation()
            if ch == "\n":
                out.line += 1
            i += length
            continue

        if ch.isspace():
            out.end_token()
        else:
            out.add(ch)
        i += 1

    if in_quote:
        out.unterminated('"')


_SCANNERS: Dict[Dialect, Callable[[str, _InvocationCollector], None]] = {
    Dialect.POSIX: _scan_posix,
    Dialect.WINDOWS: _scan_windows,
}


def tokenize(text: str, dialect: Dialect, warnings: Optional[List[TokenizeWarning]] = None) -> List[Invocation]:
    """Split a trace into command invocations.

    Args:
        text: Captured stdout of the build driver
        dialect: Quoting dialect of the shell the trace was captured for
        warnings: Optional list that receives recoverable parse warnings

    Returns:
        Invocations in trace order. Blank lines produce nothing.

    Example:
        >>> tokenize("ls && ls", Dialect.POSIX)
        [Invocation(executable='ls', args=(), line=1), Invocation(executable='ls', args=(), line=1)]
    """
    if not isinstance(dialect, Dialect):
        raise ArgumentError(f"dialect must be a Dialect, got {dialect!r}")

    collector = _InvocationCollector(warnings)
    _SCANNERS[dialect](text or "", collector)
    collector.end_invocation()

    logger.debug("Tokenized %s invocations (%s dialect)", len(collector.invocations), dialect.value)
    return collector.invocations


def quote_argument(arg: str, dialect: Dialect) -> str:
    """Quote one argument so that tokenize() in the same dialect reads it back."""
    if dialect is Dialect.WINDOWS:
        return subprocess.list2cmdline([arg])
    return shlex.quote(arg)


def join_arguments(args: Iterable[str], dialect: Dialect) -> str:
    """Render arguments as one command-line string in the given dialect."""
    return " ".join(quote_argument(arg, dialect) for arg in args)
