"""
stratconf — unit tests for the command router and exit-code normalization

File: tests/unit/engine/test_cli.py

Purpose
- Validate ``run_cli`` routing, schema target loading and ``cli_entrypoint``
  exception-to-exit-code mapping without spawning subprocesses.
"""

from __future__ import annotations

import json
from collections.abc import Iterator

import pytest
import structlog

from stratconf.cli import CLIError, build_parser, load_schema, run_cli, split_schema_args
from stratconf.constants import ExitCode
from stratconf.errors import ConfigLoadError, SchemaError
from stratconf.main import cli_entrypoint

from . import AppConfig, Portless

_TARGET = f"{__name__}:Portless"


@pytest.fixture(autouse=True)
def _reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


@pytest.mark.unit
def test_split_schema_args_at_first_double_dash() -> None:
    assert split_schema_args(["check", "m:C"]) == (["check", "m:C"], [])
    assert split_schema_args(["check", "m:C", "--", "-p", "1", "--", "x"]) == (
        ["check", "m:C"],
        ["-p", "1", "--", "x"],
    )


@pytest.mark.unit
def test_parser_exposes_check_and_fields() -> None:
    namespace = build_parser().parse_args(["check", "m:C", "--format", "json", "--nil-ptrs"])

    assert namespace.command == "check"
    assert namespace.format == "json"
    assert namespace.nil_ptrs is True
    assert namespace.env_prefix is None


@pytest.mark.unit
def test_load_schema_resolves_module_attributes() -> None:
    assert load_schema(_TARGET) is Portless
    assert load_schema(f"{__name__}:AppConfig") is AppConfig


@pytest.mark.unit
@pytest.mark.parametrize(
    ("target", "message"),
    [
        ("no_colon", "must look like 'module:ClassName'"),
        (":Portless", "must look like 'module:ClassName'"),
        ("stratconf_missing_module:X", "cannot import module"),
        (f"{__name__}:Missing", "has no attribute 'Missing'"),
        (f"{__name__}:_TARGET", "is not a class"),
    ],
)
def test_load_schema_rejects_bad_targets(target: str, message: str) -> None:
    with pytest.raises(CLIError, match=message) as excinfo:
        load_schema(target)

    assert excinfo.value.exit_code == 2


@pytest.mark.unit
def test_run_cli_check_prints_json(capsys: pytest.CaptureFixture[str]) -> None:
    code = run_cli(["check", _TARGET, "--format", "json", "--", "--host", "db.internal"])

    assert code == 0
    assert json.loads(capsys.readouterr().out) == {"host": "db.internal", "ratio": 0.5}


@pytest.mark.unit
def test_run_cli_reports_cli_errors(capsys: pytest.CaptureFixture[str]) -> None:
    assert run_cli(["fields", "nope"]) == 2
    assert "error: schema target must look like" in capsys.readouterr().err


@pytest.mark.unit
def test_missing_command_is_a_usage_error(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint([]) == 2
    assert "usage: stratconf" in capsys.readouterr().err


@pytest.mark.unit
def test_entrypoint_maps_resolution_errors_to_config_error(
    capsys: pytest.CaptureFixture[str],
) -> None:
    code = cli_entrypoint(["check", _TARGET, "--", "--ratio", "half"])

    assert code == ExitCode.CONFIG_ERROR
    assert "ratio: invalid value 'half'" in capsys.readouterr().err


@pytest.mark.unit
def test_entrypoint_passes_help_exit_through(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli_entrypoint(["check", _TARGET, "--", "-h"]) == ExitCode.SUCCESS
    assert "--host HOST, -H HOST" in capsys.readouterr().out


@pytest.mark.unit
@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (ConfigLoadError("broken"), ExitCode.CONFIG_ERROR),
        (SchemaError("bad schema"), ExitCode.DEFINITION_ERROR),
        (RuntimeError("boom"), ExitCode.INTERNAL_ERROR),
    ],
)
def test_entrypoint_routes_exception_chains(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
    error: Exception,
    expected: ExitCode,
) -> None:
    def explode(argv: object) -> int:
        try:
            raise error
        except Exception as exc:
            raise RuntimeError("wrapped") from exc

    monkeypatch.setattr("stratconf.cli.run_cli", explode)

    assert cli_entrypoint([]) == expected
    err = capsys.readouterr().err
    if expected is ExitCode.INTERNAL_ERROR:
        assert "Traceback" in err
    else:
        assert "wrapped" in err


@pytest.mark.unit
def test_entrypoint_normalizes_unknown_exit_codes(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("stratconf.cli.run_cli", lambda argv: 42)

    assert cli_entrypoint([]) == ExitCode.INTERNAL_ERROR
