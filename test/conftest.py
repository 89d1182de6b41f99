#!/usr/bin/env python3
#****************************************************************************************************************************************************
#* BSD 3-Clause License
#*
#* Copyright (c) 2025, Mana Battery
#* All rights reserved.
#*
#* Redistribution and use in source and binary forms, with or without modification, are permitted provided that the following conditions are met:
#*
#* 1. Redistributions of source code must retain the above copyright notice, this list of conditions and the following disclaimer.
#* 2. Redistributions in binary form must reproduce the above copyright notice, this list of conditions and the following disclaimer in the
#*    documentation and/or other materials provided with the distribution.
#* 3. Neither the name of the copyright holder nor the names of its contributors may be used to endorse or promote products derived from this
#*    software without specific prior written permission.
#*
#* THIS SOFTWARE IS PROVIDED BY THE COPYRIGHT HOLDERS AND CONTRIBUTORS "AS IS" AND ANY EXPRESS OR IMPLIED WARRANTIES, INCLUDING, BUT NOT LIMITED TO,
#* THE IMPLIED WARRANTIES OF MERCHANTABILITY AND FITNESS FOR A PARTICULAR PURPOSE ARE DISCLAIMED. IN NO EVENT SHALL THE COPYRIGHT HOLDER OR
#* CONTRIBUTORS BE LIABLE FOR ANY DIRECT, INDIRECT, INCIDENTAL, SPECIAL, EXEMPLARY, OR CONSEQUENTIAL DAMAGES (INCLUDING, BUT NOT LIMITED TO,
#* PROCUREMENT OF SUBSTITUTE GOODS OR SERVICES; LOSS OF USE, DATA, OR PROFITS; OR BUSINESS INTERRUPTION) HOWEVER CAUSED AND ON ANY THEORY OF
#* LIABILITY, WHETHER IN CONTRACT, STRICT LIABILITY, OR TORT (INCLUDING NEGLIGENCE OR OTHERWISE) ARISING IN ANY WAY OUT OF THE USE OF THIS SOFTWARE,
#* EVEN IF ADVISED OF THE POSSIBILITY OF SUCH DAMAGE.
"""Pytest configuration and shared fixtures for buildTrace tests.

Trace fixtures are small captured dry-run outputs. The NDK trace is a
trimmed ndk-build -n -B run over the hello-jni sample for two ABIs.
"""

import sys
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Generator

import pytest

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

NDK = "/opt/android-ndk-r10e"

NDK_HELLO_JNI_TRACE = f"""rm -f ./libs/arm64-v8a/lib*.so ./libs/x86_64/lib*.so
rm -f ./libs/arm64-v8a/gdbserver ./libs/x86_64/gdbserver
mkdir -p libs/arm64-v8a
echo [arm64-v8a] "Gdbserver      ": "[aarch64-linux-android-4.9] libs/arm64-v8a/gdbserver"
install -p {NDK}/prebuilt/android-arm64/gdbserver/gdbserver ./libs/arm64-v8a/gdbserver
echo "set solib-search-path ./obj/local/arm64-v8a" > ./libs/arm64-v8a/gdb.setup
mkdir -p obj/local/arm64-v8a/objs-debug/hello-jni
echo [arm64-v8a] "Compile        ": "hello-jni <= hello-jni.c"
{NDK}/toolchains/aarch64-linux-android-4.9/prebuilt/linux-x86_64/bin/aarch64-linux-android-gcc -MMD -MP -MF ./obj/local/arm64-v8a/objs-debug/hello-jni/hello-jni.o.d -fpic -O0 -g -Ijni -DANDROID  -Wa,--noexecstack -I{NDK}/platforms/android-21/arch-arm64/usr/include -c  jni/hello-jni.c -o ./obj/local/arm64-v8a/objs-debug/hello-jni/hello-jni.o
mkdir -p obj/local/arm64-v8a
echo [arm64-v8a] "SharedLibrary  ": "libhello-jni.so"
{NDK}/toolchains/aarch64-linux-android-4.9/prebuilt/linux-x86_64/bin/aarch64-linux-android-g++ -Wl,-soname,libhello-jni.so -shared --sysroot={NDK}/platforms/android-21/arch-arm64 ./obj/local/arm64-v8a/objs-debug/hello-jni/hello-jni.o -lgcc -no-canonical-prefixes  -Wl,--no-undefined -lc -lm -o ./obj/local/arm64-v8a/libhello-jni.so
echo [arm64-v8a] "Install        ": "libhello-jni.so => libs/arm64-v8a/libhello-jni.so"
install -p ./obj/local/arm64-v8a/libhello-jni.so ./libs/arm64-v8a/libhello-jni.so
{NDK}/toolchains/aarch64-linux-android-4.9/prebuilt/linux-x86_64/bin/aarch64-linux-android-strip --strip-unneeded  ./libs/arm64-v8a/libhello-jni.so
mkdir -p obj/local/x86_64/objs-debug/hello-jni
echo [x86_64] "Compile        ": "hello-jni <= hello-jni.c"
{NDK}/toolchains/x86_64-4.9/prebuilt/linux-x86_64/bin/x86_64-linux-android-gcc -MMD -MP -MF ./obj/local/x86_64/objs-debug/hello-jni/hello-jni.o.d -O0 -g -Ijni -DANDROID  -Wa,--noexecstack -I{NDK}/platforms/android-21/arch-x86_64/usr/include -c  jni/hello-jni.c -o ./obj/local/x86_64/objs-debug/hello-jni/hello-jni.o
mkdir -p obj/local/x86_64
echo [x86_64] "SharedLibrary  ": "libhello-jni.so"
{NDK}/toolchains/x86_64-4.9/prebuilt/linux-x86_64/bin/x86_64-linux-android-g++ -Wl,-soname,libhello-jni.so -shared --sysroot={NDK}/platforms/android-21/arch-x86_64 ./obj/local/x86_64/objs-debug/hello-jni/hello-jni.o -lgcc -no-canonical-prefixes  -Wl,--no-undefined -lc -lm -o ./obj/local/x86_64/libhello-jni.so
echo [x86_64] "Install        ": "libhello-jni.so => libs/x86_64/libhello-jni.so"
install -p ./obj/local/x86_64/libhello-jni.so ./libs/x86_64/libhello-jni.so
{NDK}/toolchains/x86_64-4.9/prebuilt/linux-x86_64/bin/x86_64-linux-android-strip --strip-unneeded  ./libs/x86_64/libhello-jni.so
"""

STATIC_LIBRARY_TRACE = """mkdir -p obj/local/x86
gcc -c src/util.c -o obj/local/x86/util.o
gcc -c src/str.c -o obj/local/x86/str.o
ar crsD obj/local/x86/libutil.a obj/local/x86/util.o obj/local/x86/str.o
g++ -c src/main.cpp -o obj/local/x86/main.o -Iinclude
g++ -shared obj/local/x86/main.o obj/local/x86/libutil.a -o obj/local/x86/libapp.so
"""


@pytest.fixture
def temp_dir() -> Generator[str, None, None]:
    """Create a temporary directory for tests.

    Scope: function (default)
    Use for: Trace files read by the command-line tool
    """
    tmpdir = tempfile.mkdtemp(prefix="buildtrace_test_")
    yield tmpdir
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def ndk_trace() -> str:
    return NDK_HELLO_JNI_TRACE


@pytest.fixture
def static_library_trace() -> str:
    """Two C sources archived into a static library linked into a shared library."""
    return STATIC_LIBRARY_TRACE


@pytest.fixture
def write_trace(temp_dir: str) -> Callable[[str, str], str]:
    """Return a helper that writes trace text to a file and returns its path."""

    def _write(name: str, text: str) -> str:
        path = Path(temp_dir) / name
        path.write_text(text, encoding="utf-8")
        return str(path)

    return _write
