"""
stratconf — unit tests for templates and effective-config dumps

File: tests/unit/engine/test_templates.py

Purpose
- Validate env/YAML template rendering and redacted effective dumps.

What this test file should cover
- Env template lines with descriptions and permitted values.
- YAML template nesting along named groups, loadable back as a config file.
- Secret redaction and deterministic JSON output.
"""

from __future__ import annotations

import json
from dataclasses import replace
from pathlib import Path

import pytest
import yaml

from stratconf import (
    dump_config,
    dump_effective_config,
    render_env_template,
    render_yaml_template,
    resolve_config,
)

from . import AppConfig, isolated


@pytest.mark.unit
def test_env_template_lists_every_field_with_comments() -> None:
    resolution = resolve_config(AppConfig, isolated())

    lines = render_env_template(
        resolution.layout, resolution.config, prefix="APP_"
    ).splitlines()

    assert lines[:4] == ["# config file", 'APP_CONFIG=""', "# verbose mode", 'APP_DEBUG="false"']
    assert 'APP_SERVER_PORT="8080"' in lines
    assert 'APP_SERVER_IPC_SOCKET_FILE="/var/run/app.sock"' in lines
    assert 'APP_API_TOKEN="***REDACTED***"' in lines
    level_index = lines.index('APP_LEVEL="info"')
    assert lines[level_index - 1] == "# one of: debug, info, warn"


@pytest.mark.unit
def test_env_template_escapes_quotes() -> None:
    resolution = resolve_config(AppConfig, isolated(args=["--name", 'a"b']))

    text = render_env_template(resolution.layout, resolution.config, prefix=None)

    assert 'NAME="a\\"b"' in text.splitlines()


@pytest.mark.unit
def test_yaml_template_nests_named_groups() -> None:
    resolution = resolve_config(AppConfig, isolated())

    text = render_yaml_template(resolution.layout, resolution.config)
    lines = text.splitlines()

    assert "# HTTP server settings." in lines
    assert "server:" in lines
    assert "  port: 8080" in lines
    assert "  # Inter-process communication." in lines
    assert "  ipc:" in lines
    assert "    socket_file: /var/run/app.sock" in lines
    assert not any(line.startswith("config:") for line in lines)
    loaded = yaml.safe_load(text)
    assert loaded["server"]["ipc"]["socket_file"] == "/var/run/app.sock"
    assert loaded["api_token"] == "***REDACTED***"


@pytest.mark.unit
def test_yaml_template_loads_back_as_a_config_file(tmp_path: Path) -> None:
    original = resolve_config(
        AppConfig,
        isolated(args=["--tags", "a,b", "--labels", "k1=v1,k2=v2", "-p", "9090", "-d"]),
    )
    config_path = tmp_path / "app.yaml"
    config_path.write_text(
        render_yaml_template(original.layout, original.config), encoding="utf-8"
    )

    reloaded = resolve_config(AppConfig, isolated(args=["--config", str(config_path)])).config

    expected = replace(original.config, api_token="***REDACTED***", config=str(config_path))
    assert reloaded == expected


@pytest.mark.unit
def test_dump_config_redacts_secrets_and_skips_the_switch() -> None:
    resolution = resolve_config(AppConfig, isolated(args=["--api_token", "s3cr3t"]))

    redacted = dump_config(resolution.layout, resolution.config)
    raw = dump_config(resolution.layout, resolution.config, redact=False)

    assert redacted["api_token"] == "***REDACTED***"
    assert raw["api_token"] == "s3cr3t"
    assert "config" not in redacted
    assert redacted["server"] == {
        "listen_ip": "127.0.0.1",
        "port": 8080,
        "ipc": {"socket_file": "/var/run/app.sock"},
    }
    assert redacted["timeout"] == "30s"


@pytest.mark.unit
def test_effective_dump_is_deterministic_json() -> None:
    first = resolve_config(AppConfig, isolated(args=["--labels", "b=2,a=1"]))
    second = resolve_config(AppConfig, isolated(args=["--labels", "a=1,b=2"]))

    dumped = dump_effective_config(first.layout, first.config)

    assert dumped == dump_effective_config(second.layout, second.config)
    assert "s3cr3t" not in dumped
    assert json.loads(dumped)["labels"] == {"a": "1", "b": "2"}
