"""
Unit Tests - Command Line Entry Point
"""
from datetime import datetime

import pytest

from erp_etl import main as cli
from erp_etl.etl.orchestrator import RunResult, RunStatus
from erp_etl.main import build_parser, format_error_chain, main


@pytest.fixture(autouse=True)
def quiet_logging(monkeypatch):
    """Keep the global structlog configuration untouched by CLI runs"""
    monkeypatch.setattr(cli, "configure_logging", lambda *args, **kwargs: None)


@pytest.fixture
def sqlite_warehouse_env(monkeypatch):
    monkeypatch.setenv("WAREHOUSE_URL", "sqlite+aiosqlite:///:memory:")


class TestErrorChain:
    """Tests for fatal error reporting"""

    def test_single_error(self):
        assert format_error_chain(ValueError("bad value")) == ["Error: ValueError: bad value"]

    def test_chained_causes(self):
        try:
            try:
                raise ConnectionRefusedError("port 5432")
            except ConnectionRefusedError as inner:
                raise RuntimeError("warehouse unreachable") from inner
        except RuntimeError as outer:
            lines = format_error_chain(outer)

        assert lines == [
            "Error: RuntimeError: warehouse unreachable",
            "  Caused by: ConnectionRefusedError: port 5432",
        ]


class TestParser:
    def test_flags(self):
        args = build_parser().parse_args(["--mock", "--create-schema", "--strict", "--log-level", "DEBUG"])

        assert args.mock and args.create_schema and args.strict
        assert args.log_level == "DEBUG"

    def test_defaults(self):
        args = build_parser().parse_args([])

        assert not (args.mock or args.create_schema or args.strict)
        assert args.log_level is None


class TestMain:
    """Tests for exit codes"""

    def test_invalid_configuration_exits_1(self, monkeypatch, capsys):
        monkeypatch.setenv("APP_ENV", "nowhere")

        assert main([]) == 1

        err = capsys.readouterr().err
        assert "Fatal error" in err
        assert "ValidationError" in err

    def test_mock_run_exits_0(self, sqlite_warehouse_env):
        assert main(["--mock", "--create-schema"]) == 0

    def test_mock_run_strict_exits_0(self, sqlite_warehouse_env):
        assert main(["--mock", "--create-schema", "--strict"]) == 0

    def test_unreachable_warehouse_exits_1(self, monkeypatch, capsys):
        async def unreachable(settings, ensure_schema=False):
            try:
                raise ConnectionRefusedError("port 5432")
            except ConnectionRefusedError as e:
                raise OSError("could not connect to the warehouse") from e

        monkeypatch.setattr(cli, "run_pipeline", unreachable)

        assert main([]) == 1
        err = capsys.readouterr().err
        assert "Caused by: ConnectionRefusedError: port 5432" in err

    @pytest.mark.parametrize("strict,expected", [(False, 0), (True, 1)])
    def test_failed_run_exit_code(self, monkeypatch, strict, expected):
        async def failed_run(settings, ensure_schema=False):
            return RunResult(run_id="abc", status=RunStatus.CONNECTION_FAILED, started_at=datetime.utcnow())

        monkeypatch.setattr(cli, "run_pipeline", failed_run)

        argv = ["--strict"] if strict else []
        assert main(argv) == expected
