"""Tests for executable resolution."""

import os

import pytest

from rholang_orchestrator.process import resolver as resolver_module
from rholang_orchestrator.process.resolver import (
    ExecutableResolver,
    Found,
    NotFound,
    is_executable,
)
from rholang_orchestrator.types.errors import ErrorCode, ResolutionError

posix_only = pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")


@posix_only
class TestIsExecutable:
    def test_executable_file(self, tmp_path, make_exec):
        assert is_executable(str(make_exec(tmp_path, "tool")))

    def test_non_executable_file(self, tmp_path, make_exec):
        assert not is_executable(str(make_exec(tmp_path, "tool", mode=0o644)))

    def test_group_execute_bit_is_enough(self, tmp_path, make_exec):
        assert is_executable(str(make_exec(tmp_path, "tool", mode=0o610)))

    def test_directory_is_not_executable(self, tmp_path):
        assert not is_executable(str(tmp_path))

    def test_missing_file(self, tmp_path):
        assert not is_executable(str(tmp_path / "missing"))

    def test_other_io_errors_propagate(self, monkeypatch, tmp_path):
        def _denied(path):
            raise PermissionError(13, "Permission denied", path)

        monkeypatch.setattr(resolver_module.os, "stat", _denied)
        with pytest.raises(ResolutionError) as exc_info:
            is_executable(str(tmp_path / "tool"))
        assert exc_info.value.code == ErrorCode.RESOLUTION_IO_FAILED


@posix_only
class TestExecutableResolver:
    def test_well_known_name_searched_on_path(self, bin_dir):
        resolver = ExecutableResolver(search_path=str(bin_dir))
        assert resolver.resolve("rnode") == Found(str(bin_dir / "rnode"))

    def test_search_path_order(self, tmp_path, make_exec):
        first, second = tmp_path / "a", tmp_path / "b"
        first.mkdir()
        second.mkdir()
        make_exec(first, "rnode", mode=0o644)
        make_exec(second, "rnode")
        resolver = ExecutableResolver(search_path=os.pathsep.join([str(first), str(second)]))
        assert resolver.resolve("rnode") == Found(str(second / "rnode"))

    def test_well_known_name_missing(self, empty_bin_dir):
        resolver = ExecutableResolver(search_path=str(empty_bin_dir))
        assert resolver.resolve("rholang-language-server") == NotFound("rholang-language-server")

    def test_literal_path(self, tmp_path, make_exec):
        path = make_exec(tmp_path, "custom-server")
        assert ExecutableResolver().resolve(str(path)) == Found(str(path))

    def test_other_bare_names_are_literal_paths(self, bin_dir, make_exec):
        make_exec(bin_dir, "custom-server")
        resolver = ExecutableResolver(search_path=str(bin_dir))
        assert isinstance(resolver.resolve("custom-server"), NotFound)

    def test_literal_path_not_executable(self, tmp_path, make_exec):
        path = make_exec(tmp_path, "custom-server", mode=0o600)
        assert ExecutableResolver().resolve(str(path)) == NotFound(str(path))

    def test_empty_candidate(self):
        assert isinstance(ExecutableResolver().resolve(""), NotFound)
