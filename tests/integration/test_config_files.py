"""
stratconf — config-file loading contracts

File: tests/integration/test_config_files.py

Purpose
- Validate YAML/JSON config-file loading and its failure modes on real files.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pytest

from stratconf import (
    ConfigFile,
    ConfigLoadError,
    ConfigRegistry,
    Options,
    ResolutionError,
    Stage,
    group,
    resolve_config,
    setting,
    walk,
)
from stratconf.sources import load_config_file, lookup_file_value


@dataclass
class Server:
    port: int = setting(8080)


@dataclass
class AppConfig:
    config: ConfigFile = setting("")
    tags: list[str] = setting()
    version: str = setting("")
    mode: str = setting("")
    ratio: float = setting(0.5)
    server: Server = group()


def _from_file(path: Path) -> Options:
    return Options(
        args=["--config", str(path)],
        environ={},
        registry=ConfigRegistry(),
        no_recover=True,
    )


def _write(path: Path, contents: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(contents, encoding="utf-8")
    return path


@pytest.mark.integration
@pytest.mark.parametrize(
    ("name", "contents"),
    [
        ("app.yaml", "server:\n  port: 9100\ntags: [a, b]\n"),
        ("app.yml", "server:\n  port: 9100\ntags:\n  - a\n  - b\n"),
        ("app.json", '{"server": {"port": 9100}, "tags": ["a", "b"]}'),
    ],
)
def test_supported_formats_feed_the_same_values(tmp_path: Path, name: str, contents: str) -> None:
    path = _write(tmp_path / name, contents)

    config = resolve_config(AppConfig, _from_file(path)).config

    assert config.server.port == 9100
    assert config.tags == ["a", "b"]


@pytest.mark.integration
def test_empty_files_load_as_empty_mappings(tmp_path: Path) -> None:
    assert load_config_file(_write(tmp_path / "empty.yaml", "")) == {}
    assert load_config_file(_write(tmp_path / "empty.json", "  \n")) == {}


@pytest.mark.integration
@pytest.mark.parametrize(
    ("name", "contents", "message"),
    [
        ("bad.yaml", "server: [unclosed\n", "invalid config file syntax"),
        ("bad.json", '{"server": ', "invalid config file syntax"),
        ("list.yaml", "- a\n- b\n", "config root must be a mapping"),
        ("app.toml", "port = 1\n", "unsupported config file extension '.toml'"),
    ],
)
def test_load_failures_are_config_load_errors(
    tmp_path: Path, name: str, contents: str, message: str
) -> None:
    path = _write(tmp_path / name, contents)

    with pytest.raises(ConfigLoadError, match=message) as excinfo:
        load_config_file(path)

    assert excinfo.value.stage is Stage.SOURCES_LOADED
    assert excinfo.value.primary.path == str(path)


@pytest.mark.integration
def test_missing_file_is_reported_with_its_path(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config_file(tmp_path / "nope.yaml")


@pytest.mark.integration
def test_file_values_with_the_wrong_shape_fail_decoding(tmp_path: Path) -> None:
    path = _write(tmp_path / "app.yaml", "server:\n  port: [1, 2]\n")

    with pytest.raises(ResolutionError, match="expected a scalar value, got list") as excinfo:
        resolve_config(AppConfig, _from_file(path))

    assert excinfo.value.stage is Stage.DECODED


@pytest.mark.integration
def test_lookup_stops_at_non_mapping_branches() -> None:
    layout = walk(AppConfig)
    port = layout.field("server_port")

    assert lookup_file_value({"server": {"port": 1}}, port) == 1
    assert lookup_file_value({"server": "scalar"}, port) is None
    assert lookup_file_value({}, port) is None


@pytest.mark.integration
@pytest.mark.parametrize(
    ("name", "contents"),
    [
        ("app.yaml", "version: 1.10\nmode: on\nratio: 2.50\nserver:\n  port: 0x1F\n"),
        ("app.json", '{"version": 1.10, "mode": "on", "ratio": 2.50, "server": {"port": 31}}'),
    ],
)
def test_string_fields_keep_their_source_text(tmp_path: Path, name: str, contents: str) -> None:
    path = _write(tmp_path / name, contents)

    config = resolve_config(AppConfig, _from_file(path)).config

    assert config.version == "1.10"
    assert config.mode == "on"
    assert config.ratio == 2.5
    assert config.server.port == 31


@pytest.mark.integration
def test_yaml_null_still_falls_back_to_the_default(tmp_path: Path) -> None:
    path = _write(tmp_path / "app.yaml", "version: ~\nserver:\n  port: null\n")

    config = resolve_config(AppConfig, _from_file(path)).config

    assert config.version == ""
    assert config.server.port == 8080
    assert load_config_file(path) == {"version": None, "server": {"port": None}}
