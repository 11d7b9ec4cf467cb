"""Tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest

from tailers.__main__ import build_parser, main, resolve_config
from tailers.config import ConfigError


class TestParser:
    def test_files_repeatable_and_listed(self) -> None:
        args = build_parser().parse_args(["--files", "a.log", "b.log", "-f", "c.log"])
        assert args.files == ["a.log", "b.log", "c.log"]

    def test_defaults(self) -> None:
        args = build_parser().parse_args([])
        assert args.files == []
        assert args.config is None
        assert args.lenient is False
        assert args.log_level == "INFO"


class TestResolveConfig:
    def test_cli_files_only(self, tmp_path: Path) -> None:
        args = build_parser().parse_args(["--files", str(tmp_path / "a.log")])
        config = resolve_config(args)
        assert config.files == [tmp_path / "a.log"]
        assert config.strict_startup is True

    def test_config_and_cli_files_merge(self, tmp_path: Path) -> None:
        config_path = tmp_path / "tailers.yaml"
        config_path.write_text("tail:\n  files: [a.log]\n  bus_capacity: 5\n")
        args = build_parser().parse_args(
            ["--config", str(config_path), "--files", str(tmp_path / "b.log"), "--lenient"]
        )
        config = resolve_config(args)
        assert config.files == [tmp_path / "a.log", tmp_path / "b.log"]
        assert config.bus_capacity == 5
        assert config.strict_startup is False

    def test_no_files(self) -> None:
        with pytest.raises(ConfigError):
            resolve_config(build_parser().parse_args([]))


class TestMain:
    def test_missing_file_exits_non_zero(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main(["--files", str(tmp_path / "missing.log")])
        assert excinfo.value.code == 1

    def test_config_error_exits_with_two(self, tmp_path: Path) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main(["--config", str(tmp_path / "absent.yaml")])
        assert excinfo.value.code == 2

    def test_no_files_exits_with_two(self) -> None:
        with pytest.raises(SystemExit) as excinfo:
            main([])
        assert excinfo.value.code == 2
