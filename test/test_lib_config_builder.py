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
"""Tests for buildtrace/config_builder.py and buildtrace/models.py"""

import json
import dataclasses

import pytest

from buildtrace.command_line import Dialect
from buildtrace.config_builder import (
    AnalyzedVariant,
    NativeBuildConfigBuilder,
    VariantRequest,
    abi_of,
    analyze_variant,
    analyze_variants_parallel,
    artifact_name_of,
    library_key,
    toolchain_key,
)
from buildtrace.constants import EXIT_RUNTIME_ERROR, AnalysisError, LibraryCollisionError
from buildtrace.models import AggregateBuildConfig, SourceFileEntry

BUILD_FILE = "/projects/MyProject/jni/Android.mk"
BUILD_COMMAND = "echo build command"

DOUBLE_TARGET = "g++ -c a.c -o x86_64/a.o\ng++ x86_64/a.o -o x86_64/a.so\ng++ -c a.c -o x86/a.o\ng++ x86/a.o -o x86/a.so"


def build_single(text: str, dialect: Dialect = Dialect.POSIX, variant: str = "debug") -> AggregateBuildConfig:
    return NativeBuildConfigBuilder(build_files=[BUILD_FILE]).add_variant(BUILD_COMMAND, variant, text, dialect).build()


class TestNamingHelpers:
    """Tests for key and name synthesis."""

    @pytest.mark.parametrize(
        "output,expected",
        [
            ("./obj/local/arm64-v8a/libhello-jni.so", "arm64-v8a"),
            ("x86/a.so", "x86"),
            ("a.so", ""),
            ("C:\\out\\x86\\liba.so", "x86"),
        ],
    )
    def test_abi_of(self, output: str, expected: str) -> None:
        assert abi_of(output) == expected

    @pytest.mark.parametrize(
        "output,expected",
        [
            ("./obj/local/arm64-v8a/libhello-jni.so", "hello-jni"),
            ("x/aa.o", "aa"),
            ("x86/a.so", "a"),
            ("out\\libfoo.a", "foo"),
            ("lib.so", "lib"),
            ("bin/app", "app"),
        ],
    )
    def test_artifact_name_of(self, output: str, expected: str) -> None:
        assert artifact_name_of(output) == expected

    def test_keys(self) -> None:
        assert library_key("hello-jni", "debug", "arm64-v8a") == "hello-jni-debug-arm64-v8a"
        assert toolchain_key("x86_64") == "toolchain-x86_64"


class TestSingleVariant:
    """One add_variant() call."""

    def test_double_target(self) -> None:
        model = build_single(DOUBLE_TARGET)

        assert sorted(model.libraries) == ["a-debug-x86", "a-debug-x86_64"]
        first = model.libraries["a-debug-x86_64"]
        second = model.libraries["a-debug-x86"]
        assert first.abi == "x86_64"
        assert first.artifact_name == "a"
        assert first.output == "x86_64/a.so"
        assert first.files == (SourceFileEntry("a.c", ""),)
        assert second.output == "x86/a.so"

        # Both ABIs compiled with the same g++, so one toolchain serves both
        assert list(model.toolchains) == ["toolchain-x86_64"]
        assert first.toolchain == second.toolchain == "toolchain-x86_64"
        assert model.toolchains["toolchain-x86_64"].c_compiler == "g++"
        assert model.toolchains["toolchain-x86_64"].cpp_compiler is None

        assert model.c_file_extensions == frozenset({"c"})
        assert model.cpp_file_extensions == frozenset()

    def test_build_files_and_commands(self) -> None:
        model = build_single(DOUBLE_TARGET)
        assert model.build_files == (BUILD_FILE,)
        assert model.clean_commands == ("echo build command clean",)
        assert all(library.build_command == BUILD_COMMAND for library in model.libraries.values())

    def test_include_in_source(self) -> None:
        model = build_single("g++ -c a.c -o x/aa.o -Isome-include-path\n")

        library = model.libraries["aa-debug-x"]
        assert library.abi == "x"
        assert library.output == "x/aa.o"
        assert library.toolchain == "toolchain-x"
        assert library.files == (SourceFileEntry("a.c", "-Isome-include-path"),)
        assert model.toolchains["toolchain-x"].c_compiler == "g++"

    @pytest.mark.parametrize(
        "text",
        [
            "g++ -c a.c -o x86_64/aa.o\ng++ -c a.S -o x86_64/aS.so\ng++ x86_64/aa.o x86_64/aS.so -o x86/a.so",
            "g++ -c a.S -o x86_64/aS.so\ng++ -c a.c -o x86_64/aa.o\ng++ x86_64/aa.o x86_64/aS.so -o x86/a.so",
        ],
    )
    def test_weird_extension(self, text: str) -> None:
        model = build_single(text)

        assert list(model.libraries) == ["a-debug-x86"]
        library = model.libraries["a-debug-x86"]
        assert [entry.src for entry in library.files] == ["a.S", "a.c"]
        assert library.extensions == frozenset({"S", "c"})
        assert model.c_file_extensions == frozenset({"S", "c"})
        assert model.cpp_file_extensions == frozenset()
        assert list(model.toolchains) == ["toolchain-x86"]

    def test_c_and_cpp_roles(self) -> None:
        model = build_single("clang++ -c a.cpp -o x/a.o\nclang -c b.c -o x/b.o\nclang++ x/a.o x/b.o -o x/libm.so")

        toolchain = model.toolchains[model.libraries["m-debug-x"].toolchain]
        assert toolchain.c_compiler == "clang"
        assert toolchain.cpp_compiler == "clang++"
        assert model.c_file_extensions == frozenset({"c"})
        assert model.cpp_file_extensions == frozenset({"cpp"})

    def test_static_library_chain(self, static_library_trace: str) -> None:
        model = build_single(static_library_trace)

        assert list(model.libraries) == ["app-debug-x86"]
        library = model.libraries["app-debug-x86"]
        assert [entry.src for entry in library.files] == ["src/main.cpp", "src/str.c", "src/util.c"]
        assert library.files[0].flags == "-Iinclude"
        toolchain = model.toolchains[library.toolchain]
        assert toolchain.c_compiler == "gcc"
        assert toolchain.cpp_compiler == "g++"

    def test_prebuilt_leaf_is_not_a_source(self) -> None:
        model = build_single("gcc -c a.c -o x/a.o\ngcc x/a.o prebuilt/libz.a -o x/libapp.so")
        assert [entry.src for entry in model.libraries["app-debug-x"].files] == ["a.c"]

    def test_self_referencing_archive_library(self) -> None:
        model = build_single("gcc -c b.c -o x/b.o\nar rcs x/libx.a x/libx.a x/b.o")
        assert list(model.libraries) == ["x-debug-x"]
        assert model.libraries["x-debug-x"].files == (SourceFileEntry("b.c", ""),)

    def test_background_job_flags(self) -> None:
        model = build_single("gcc -c a.c -o x86/a.o &\ngcc x86/a.o -o x86/liba.so\n")
        assert model.libraries["a-debug-x86"].files == (SourceFileEntry("a.c", ""),)

    def test_ndk_trace(self, ndk_trace: str) -> None:
        model = build_single(ndk_trace)

        assert sorted(model.libraries) == ["hello-jni-debug-arm64-v8a", "hello-jni-debug-x86_64"]
        assert sorted(model.toolchains) == ["toolchain-arm64-v8a", "toolchain-x86_64"]

        arm = model.libraries["hello-jni-debug-arm64-v8a"]
        assert arm.output == "./obj/local/arm64-v8a/libhello-jni.so"
        assert arm.toolchain == "toolchain-arm64-v8a"
        assert model.toolchains["toolchain-arm64-v8a"].c_compiler.endswith("/aarch64-linux-android-gcc")
        assert model.toolchains["toolchain-x86_64"].c_compiler.endswith("/x86_64-linux-android-gcc")

        (entry,) = arm.files
        assert entry.src == "jni/hello-jni.c"
        tokens = entry.flags.split()
        assert "-fpic" in tokens
        assert "-MF" in tokens
        assert "-c" not in tokens
        assert "-o" not in tokens
        assert "jni/hello-jni.c" not in tokens

    def test_windows_trace(self) -> None:
        text = "C:\\ndk\\bin\\clang.exe -c jni\\a.c -o obj\\x86\\a.o\nC:\\ndk\\bin\\clang.exe obj\\x86\\a.o -o obj\\x86\\liba.so"
        model = build_single(text, Dialect.WINDOWS)

        library = model.libraries["a-debug-x86"]
        assert library.files == (SourceFileEntry("jni\\a.c", ""),)
        assert model.toolchains["toolchain-x86"].c_compiler == "C:\\ndk\\bin\\clang.exe"

    def test_empty_trace(self) -> None:
        model = build_single("mkdir -p out\necho nothing to do")
        assert dict(model.libraries) == {}
        assert dict(model.toolchains) == {}
        assert model.clean_commands == ("echo build command clean",)


class TestAggregation:
    """Several add_variant() calls on one builder."""

    def test_same_key_merges(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", DOUBLE_TARGET, Dialect.POSIX)
        builder.add_variant(BUILD_COMMAND, "debug", DOUBLE_TARGET, Dialect.POSIX)
        model = builder.build()

        assert sorted(model.libraries) == ["a-debug-x86", "a-debug-x86_64"]
        assert list(model.toolchains) == ["toolchain-x86_64"]
        assert model.clean_commands == ("echo build command clean",)

    def test_merge_unions_sources(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c a.c -o x/a.o\ng++ x/a.o -o x/liba.so", Dialect.POSIX)
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c b.c -o x/b.o\ng++ x/b.o -o x/liba.so", Dialect.POSIX)
        model = builder.build()

        assert [entry.src for entry in model.libraries["a-debug-x"].files] == ["a.c", "b.c"]

    def test_first_flags_win(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c a.c -o x/a.o -O0\ng++ x/a.o -o x/liba.so", Dialect.POSIX)
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c a.c -o x/a.o -O2\ng++ x/a.o -o x/liba.so", Dialect.POSIX)
        assert builder.build().libraries["a-debug-x"].files == (SourceFileEntry("a.c", "-O0"),)

    def test_variants_share_toolchain(self) -> None:
        trace = "g++ -c a.c -o x86/a.o\ng++ x86/a.o -o x86/liba.so"
        model = (
            NativeBuildConfigBuilder()
            .add_variant("ndk-build NDK_DEBUG=1", "debug", trace, Dialect.POSIX)
            .add_variant("ndk-build NDK_DEBUG=0", "release", trace, Dialect.POSIX)
            .build()
        )

        assert sorted(model.libraries) == ["a-debug-x86", "a-release-x86"]
        assert list(model.toolchains) == ["toolchain-x86"]
        assert model.libraries["a-release-x86"].build_command == "ndk-build NDK_DEBUG=0"
        assert model.clean_commands == ("ndk-build NDK_DEBUG=1 clean", "ndk-build NDK_DEBUG=0 clean")

    def test_abis_with_same_compiler_share_toolchain(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", "clang -target aarch64 -c a.c -o arm64/a.o\nclang arm64/a.o -o arm64/liba.so", Dialect.POSIX)
        builder.add_variant(BUILD_COMMAND, "debug", "clang -target x86_64 -c a.c -o x86_64/a.o\nclang x86_64/a.o -o x86_64/liba.so", Dialect.POSIX)
        model = builder.build()

        assert list(model.toolchains) == ["toolchain-arm64"]
        assert model.libraries["a-debug-x86_64"].toolchain == "toolchain-arm64"

    def test_different_toolchain_collides(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c a.c -o x/a.o\ng++ x/a.o -o x/liba.so", Dialect.POSIX)
        builder.add_variant(BUILD_COMMAND, "debug", "clang++ -c a.c -o x/a.o\nclang++ x/a.o -o x/liba.so", Dialect.POSIX)

        with pytest.raises(LibraryCollisionError) as exc_info:
            builder.build()
        assert exc_info.value.key == "a-debug-x"
        assert "a-debug-x" in str(exc_info.value)
        assert isinstance(exc_info.value, AnalysisError)
        assert exc_info.value.exit_code == EXIT_RUNTIME_ERROR

    def test_different_output_collides(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c a.c -o x/a.o\ng++ x/a.o -o x/liba.so\ng++ x/a.o -o x/a.a", Dialect.POSIX)
        with pytest.raises(LibraryCollisionError):
            builder.build()

    def test_build_returns_snapshot(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c a.c -o x/a.o\ng++ x/a.o -o x/liba.so", Dialect.POSIX)
        first = builder.build()
        builder.add_variant(BUILD_COMMAND, "debug", "g++ -c b.c -o y/b.o\ng++ y/b.o -o y/libb.so", Dialect.POSIX)
        second = builder.build()

        assert list(first.libraries) == ["a-debug-x"]
        assert sorted(second.libraries) == ["a-debug-x", "b-debug-y"]

    def test_warnings_and_suspicious_outputs_are_collected(self) -> None:
        builder = NativeBuildConfigBuilder()
        builder.add_variant(BUILD_COMMAND, "debug", 'gcc -c "a.c -o a.o', Dialect.POSIX)
        builder.add_variant(BUILD_COMMAND, "debug", "gcc b.o -o a.o\ngcc a.o -o b.o\ngcc b.o -o x/app", Dialect.POSIX)

        assert len(builder.warnings) == 1
        assert builder.suspicious_outputs == ["x/app"]
        assert len(builder.variants) == 2


class TestModel:
    """Tests for the immutable model types."""

    def test_is_immutable(self) -> None:
        model = build_single(DOUBLE_TARGET)
        with pytest.raises(TypeError):
            model.libraries["new"] = model.libraries["a-debug-x86"]  # type: ignore[index]
        with pytest.raises(dataclasses.FrozenInstanceError):
            model.build_files = ()  # type: ignore[misc]

    def test_to_dict(self) -> None:
        data = build_single(DOUBLE_TARGET).to_dict()

        assert data["buildFiles"] == [BUILD_FILE]
        assert data["cleanCommands"] == ["echo build command clean"]
        assert list(data["libraries"]) == ["a-debug-x86", "a-debug-x86_64"]
        assert data["libraries"]["a-debug-x86"] == {
            "abi": "x86",
            "artifactName": "a",
            "buildType": "debug",
            "buildCommand": BUILD_COMMAND,
            "toolchain": "toolchain-x86_64",
            "output": "x86/a.so",
            "files": [{"src": "a.c", "flags": ""}],
        }
        assert data["toolchains"] == {"toolchain-x86_64": {"cCompilerExecutable": "g++"}}
        assert data["cFileExtensions"] == ["c"]
        assert data["cppFileExtensions"] == []
        json.dumps(data)

    def test_library_for_output(self) -> None:
        model = build_single(DOUBLE_TARGET)
        assert model.library_for_output("x86/a.so").key == "a-debug-x86"
        assert model.library_for_output("missing.so") is None


class TestAnalyzeVariant:
    """Tests for analysis without a builder."""

    def test_analyze_variant(self) -> None:
        analyzed = analyze_variant(BUILD_COMMAND, "debug", DOUBLE_TARGET, Dialect.POSIX)
        assert isinstance(analyzed, AnalyzedVariant)
        assert list(analyzed.chains) == ["x86_64/a.so", "x86/a.so"]
        assert len(analyzed.steps) == 4
        assert analyzed.warnings == ()
        assert analyzed.suspicious_outputs == []

    def test_parallel_matches_sequential(self, ndk_trace: str, static_library_trace: str) -> None:
        requests = [
            VariantRequest(BUILD_COMMAND, "debug", ndk_trace, Dialect.POSIX),
            VariantRequest(BUILD_COMMAND, "debug", static_library_trace, Dialect.POSIX),
            VariantRequest(BUILD_COMMAND, "release", DOUBLE_TARGET, Dialect.POSIX),
        ]
        parallel = analyze_variants_parallel(requests, max_workers=3)

        sequential = NativeBuildConfigBuilder()
        for request in requests:
            sequential.add_variant(*request)

        assert parallel.build().to_dict() == sequential.build().to_dict()
        assert [analyzed.variant for analyzed in parallel.variants] == ["debug", "debug", "release"]

    def test_parallel_uses_given_builder(self) -> None:
        builder = NativeBuildConfigBuilder(build_files=[BUILD_FILE])
        result = analyze_variants_parallel([VariantRequest(BUILD_COMMAND, "debug", DOUBLE_TARGET, Dialect.POSIX)], builder=builder)
        assert result is builder
        assert result.build().build_files == (BUILD_FILE,)
