"""Tests for the brokerledger command line."""

import importlib
import json

import pytest

from brokerledger.cli.main import build_parser, main
from brokerledger.config import BENCHMARK_ENV, LOG_LEVEL_ENV, YTD_STATUS_ENV

TRANSACTIONS = """Date;Symbol;Type;Qty;Net Price;TotalAmnt;Account;Status
2024-01-01;;Deposit;0;0;10000;Main;
2024-01-02;AAPL;Buy;10;100;1000;Main;
2024-01-03;MSFT;Buy;5;200;1000;Main;
2024-02-01;AAPL;Sell;10;120;1200;Main;YTD Clear
2024-02-03;MSFT;Sell;1;210;210;Main;
bad-date;MSFT;Buy;1;1;1;Main;
"""

SYMBOLS = """Symbol,Sh_name_eng,Sector
AAPL,Apple Inc.,Technology
MSFT,Microsoft,Technology
"""

QUOTES = """Date,Symbol,Close
2024-02-01,MSFT,205
2024-02-10,MSFT,210
"""


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in (BENCHMARK_ENV, YTD_STATUS_ENV, LOG_LEVEL_ENV):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def inputs(tmp_path):
    paths = []
    for name, text in (("tx.csv", TRANSACTIONS), ("symbols.csv", SYMBOLS), ("quotes.csv", QUOTES)):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        paths.append(str(path))
    return paths


class TestParser:
    """Tests for argument parsing."""

    def test_no_command_prints_help(self, capsys):
        """Verify running without a command shows help and succeeds."""
        assert main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_report_arguments(self):
        """Verify report options are parsed."""
        args = build_parser().parse_args(
            ["report", "t.csv", "s.csv", "q.csv", "--benchmark", "-5", "--as-of", "2024-06-30", "--debug"]
        )

        assert args.transactions == "t.csv"
        assert args.benchmark == "-5"
        assert args.as_of == "2024-06-30"
        assert args.debug

    def test_export_requires_output(self):
        """Verify export without --output is a usage error."""
        with pytest.raises(SystemExit):
            build_parser().parse_args(["export", "t.csv", "s.csv", "q.csv"])


class TestReportCommand:
    """Tests for the report subcommand."""

    def test_report(self, inputs, capsys):
        """Verify the report prints holdings, closed positions and the summary."""
        code = main(["report", *inputs, "--as-of", "2024-12-31", "--benchmark", "5"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Open Positions" in out
        assert "MSFT" in out
        assert "Closed Positions" in out
        assert "Summary" in out
        assert "Alpha" in out

    def test_debug_lists_skipped_rows(self, inputs, capsys):
        """Verify --debug prints input diagnostics with skipped row numbers."""
        code = main(["report", *inputs, "--as-of", "2024-12-31", "--debug"])

        out = capsys.readouterr().out
        assert code == 0
        assert "Input Diagnostics" in out
        assert "line 7" in out

    def test_range_limits_performance_window(self, inputs, capsys):
        """Verify --range is accepted and named in the performance table."""
        code = main(["report", *inputs, "--as-of", "2024-12-31", "--range", "ytd"])

        assert code == 0
        assert "Performance Metrics (ytd)" in capsys.readouterr().out

    def test_unknown_range_rejected(self, inputs):
        """Verify an unknown --range is a usage error."""
        with pytest.raises(SystemExit):
            main(["report", *inputs, "--range", "5y"])

    def test_missing_file(self, inputs, tmp_path, capsys):
        """Verify a missing input is reported with a non-zero exit code."""
        code = main(["report", inputs[0], str(tmp_path / "nope.csv"), inputs[2]])

        assert code == 1
        assert "symbols input" in capsys.readouterr().out

    def test_invalid_benchmark(self, inputs, capsys):
        """Verify a non-numeric benchmark is rejected."""
        assert main(["report", *inputs, "--benchmark", "lots"]) == 1
        assert "Invalid benchmark" in capsys.readouterr().out

    def test_invalid_as_of(self, inputs, capsys):
        """Verify a malformed --as-of date is rejected."""
        assert main(["report", *inputs, "--as-of", "31/12/2024"]) == 1
        assert "Invalid date" in capsys.readouterr().out

    def test_invalid_env_benchmark(self, inputs, monkeypatch, capsys):
        """Verify a bad benchmark in the environment is reported."""
        monkeypatch.setenv(BENCHMARK_ENV, "abc")

        assert main(["report", *inputs]) == 1
        assert BENCHMARK_ENV in capsys.readouterr().out


class TestInspectCommand:
    """Tests for the inspect subcommand."""

    def test_inspect(self, inputs, capsys):
        """Verify the delimiter and header row are shown."""
        assert main(["inspect", inputs[0]]) == 0

        out = capsys.readouterr().out
        assert "semicolon" in out
        assert "Header row: 1" in out

    def test_inspect_empty_file(self, tmp_path, capsys):
        """Verify an empty file is reported without failing."""
        path = tmp_path / "empty.csv"
        path.write_text("", encoding="utf-8")

        assert main(["inspect", str(path)]) == 0
        assert "no data lines" in capsys.readouterr().out

    def test_inspect_missing_file(self, tmp_path):
        """Verify a missing file exits with an error code."""
        assert main(["inspect", str(tmp_path / "nope.csv")]) == 1


class TestExportCommand:
    """Tests for the export subcommand."""

    def test_export_json(self, inputs, tmp_path):
        """Verify the report is written as JSON."""
        output = tmp_path / "out.json"

        assert main(["export", *inputs, "--as-of", "2024-12-31", "-o", str(output)]) == 0

        data = json.loads(output.read_text())
        assert data["holdings"][0]["symbol"] == "MSFT"
        assert data["holdings"][0]["quantity"] == 4.0

    def test_export_excel(self, inputs, tmp_path):
        """Verify the report is written as an Excel workbook."""
        output = tmp_path / "out.xlsx"

        assert main(["export", *inputs, "-o", str(output)]) == 0
        assert output.exists()

    def test_unsupported_format(self, inputs, tmp_path, capsys):
        """Verify an unknown output extension is rejected."""
        assert main(["export", *inputs, "-o", str(tmp_path / "out.csv")]) == 1
        assert "Unsupported output format" in capsys.readouterr().out


class TestVersionCommand:
    """Tests for the version subcommand."""

    def test_version(self, capsys):
        """Verify the version command prints a version line."""
        assert main(["version"]) == 0
        assert "Version:" in capsys.readouterr().out


class TestPackageLayout:
    """Tests for how the package is laid out."""

    @pytest.mark.parametrize("module", [
        "analytics", "config", "dates", "errors", "export", "ledger", "models",
        "normalize", "pipeline", "positions", "tabular",
        "cli.main", "cli.report", "cli.inspect", "cli.export", "cli.version",
    ])
    def test_modules_import_without_package_init(self, module):
        """Verify every module imports from the namespace package directly."""
        assert importlib.import_module(f"brokerledger.{module}")

    def test_namespace_package(self):
        """Verify brokerledger has no package __init__ re-exporting names."""
        package = importlib.import_module("brokerledger")

        assert getattr(package, "__file__", None) is None
        assert not hasattr(package, "__all__")
