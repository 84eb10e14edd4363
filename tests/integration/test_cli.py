"""
stratconf — CLI subprocess contracts

File: tests/integration/test_cli.py

Purpose
- Exercise ``python -m stratconf`` against a schema module written to disk.
- Verify exit codes, stdout payloads and stderr diagnostics.
"""

from __future__ import annotations

import json
import os
import subprocess
import sys
from pathlib import Path

import pytest
import yaml

PROJECT_ROOT = Path(__file__).resolve().parents[2]
SRC_PATH = PROJECT_ROOT / "src"

SCHEMA_MODULE = '''
from __future__ import annotations

from dataclasses import dataclass

from stratconf import ConfigFile, group, setting

DEFAULT_NAME = "svc"


@dataclass
class Listener:
    """Listener settings."""

    host: str = setting("127.0.0.1", help="bind address")
    port: int = setting(8080, short="p", validate="gte=1,lte=65535")


@dataclass
class Service:
    """Demo service."""

    config: ConfigFile = setting("", short="c", help="config file")
    name: str = setting("svc", help="service name")
    token: str = setting("hunter2", secret=True)
    tags: list[str] = setting(help="tags")
    listener: Listener = group()
'''


def _run_cli(workdir: Path, *args: str, **extra_env: str) -> subprocess.CompletedProcess[str]:
    env = os.environ.copy()
    existing_pythonpath = env.get("PYTHONPATH")
    pythonpath = os.pathsep.join([str(SRC_PATH), str(workdir)])
    env["PYTHONPATH"] = (
        pythonpath if not existing_pythonpath else f"{pythonpath}{os.pathsep}{existing_pythonpath}"
    )
    env.update(extra_env)
    return subprocess.run(
        [sys.executable, "-m", "stratconf", *args],
        cwd=workdir,
        text=True,
        capture_output=True,
        check=False,
        env=env,
    )


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    (tmp_path / "demo_schema.py").write_text(SCHEMA_MODULE, encoding="utf-8")
    return tmp_path


@pytest.mark.integration
def test_check_prints_redacted_yaml(workdir: Path) -> None:
    completed = _run_cli(workdir, "check", "demo_schema:Service", "--", "-p", "9000")

    assert completed.returncode == 0, completed.stderr
    payload = yaml.safe_load(completed.stdout)
    assert payload["listener"] == {"host": "127.0.0.1", "port": 9000}
    assert payload["token"] == "***REDACTED***"
    assert "config" not in payload


@pytest.mark.integration
def test_check_reads_env_and_config_file(workdir: Path) -> None:
    (workdir / "service.yaml").write_text(
        "name: from-file\nlistener:\n  port: 7000\n", encoding="utf-8"
    )

    completed = _run_cli(
        workdir,
        "check",
        "demo_schema:Service",
        "--env-prefix",
        "SVC_",
        "--format",
        "json",
        "--",
        "--config",
        "service.yaml",
        SVC_TAGS="a,b",
        SVC_LISTENER_PORT="7100",
    )

    assert completed.returncode == 0, completed.stderr
    payload = json.loads(completed.stdout)
    assert payload["name"] == "from-file"
    assert payload["tags"] == ["a", "b"]
    assert payload["listener"]["port"] == 7100


@pytest.mark.integration
def test_check_bad_value_exits_with_config_error(workdir: Path) -> None:
    completed = _run_cli(workdir, "check", "demo_schema:Service", "--", "--listener_port", "0")

    assert completed.returncode == 2
    assert completed.stdout == ""
    assert "listener_port" in completed.stderr
    assert "failed 'gte=1' rule" in completed.stderr


@pytest.mark.integration
def test_schema_help_passes_through_and_exits_zero(workdir: Path) -> None:
    completed = _run_cli(workdir, "check", "demo_schema:Service", "--", "--help")

    assert completed.returncode == 0
    assert completed.stdout.startswith("usage: stratconf check demo_schema:Service --")
    assert "--listener_port PORT, -p PORT" in completed.stdout


@pytest.mark.integration
def test_fields_lists_resolved_names_as_json(workdir: Path) -> None:
    completed = _run_cli(
        workdir, "fields", "demo_schema:Service", "--env-prefix", "SVC_", "--format", "json"
    )

    assert completed.returncode == 0, completed.stderr
    rows = {row["name"]: row for row in json.loads(completed.stdout)}
    assert list(rows) == ["config", "name", "token", "tags", "listener_host", "listener_port"]
    assert rows["listener_port"] == {
        "name": "listener_port",
        "short": "-p",
        "env": "SVC_LISTENER_PORT",
        "file": "listener.port",
        "type": "int",
        "default": "8080",
    }
    assert rows["token"]["default"] == "***REDACTED***"
    assert rows["config"]["file"] is None


@pytest.mark.integration
def test_fields_prints_a_table(workdir: Path) -> None:
    completed = _run_cli(workdir, "fields", "demo_schema:Service")

    assert completed.returncode == 0, completed.stderr
    lines = completed.stdout.splitlines()
    assert lines[0].split() == ["name", "short", "env", "file", "type", "default"]
    assert any(line.split()[:2] == ["listener_port", "-p"] for line in lines[1:])


@pytest.mark.integration
@pytest.mark.parametrize(
    ("target", "message"),
    [
        ("demo_schema", "schema target must look like 'module:ClassName'"),
        ("missing_module:Service", "cannot import module 'missing_module'"),
        ("demo_schema:Nope", "has no attribute 'Nope'"),
        ("demo_schema:DEFAULT_NAME", "is not a class"),
    ],
)
def test_bad_targets_exit_with_usage_error(workdir: Path, target: str, message: str) -> None:
    completed = _run_cli(workdir, "check", target)

    assert completed.returncode == 2
    assert message in completed.stderr
