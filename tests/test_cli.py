"""End-to-end tests for the onlygate CLI.

Tests cover:
- init / list / show / run / set-count / mark / clear / clear-all
- JSON output validated against schemas/
- Error envelopes and exit codes
- Environment-variable configuration
"""

import json
import sys
from io import StringIO

import jsonschema
import pytest
from pathlib import Path

from onlygate.cli import main


SCHEMAS_DIR = Path(__file__).parent.parent / "schemas"


class CLIRunner:
    """Simple CLI runner that captures stdout/stderr."""

    def invoke(self, args: list[str]) -> "CLIResult":
        """Run CLI with given args and capture output."""
        old_stdout = sys.stdout
        old_stderr = sys.stderr
        sys.stdout = captured_out = StringIO()
        sys.stderr = captured_err = StringIO()

        try:
            exit_code = main(args)
        except SystemExit as e:
            exit_code = e.code if e.code is not None else 0
        finally:
            sys.stdout = old_stdout
            sys.stderr = old_stderr

        return CLIResult(
            exit_code=exit_code,
            stdout=captured_out.getvalue(),
            stderr=captured_err.getvalue(),
        )


class CLIResult:
    """Result from CLI invocation."""

    def __init__(self, exit_code: int, stdout: str, stderr: str):
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.output = stdout + stderr


@pytest.fixture
def cli_runner():
    return CLIRunner()


@pytest.fixture
def store(tmp_path: Path, cli_runner: CLIRunner) -> str:
    """Initialized store path."""
    path = str(tmp_path / "store")
    result = cli_runner.invoke(["init", "--store", path])
    assert result.exit_code == 0
    return path


def load_schema(name: str) -> dict:
    with open(SCHEMAS_DIR / name, encoding="utf-8") as f:
        return json.load(f)


class TestInit:

    def test_init(self, cli_runner, tmp_path):
        path = tmp_path / "new"
        result = cli_runner.invoke(["init", "--store", str(path)])

        assert result.exit_code == 0
        assert "Initialized store" in result.stdout
        assert (path / "store.json").exists()

    def test_init_twice_fails(self, cli_runner, store):
        result = cli_runner.invoke(["init", "--store", store, "--json"])

        assert result.exit_code == 1
        envelope = json.loads(result.stderr)
        assert envelope["error"]["code"] == "STORE_EXISTS"
        jsonschema.validate(envelope, load_schema("error.schema.json"))


class TestRun:

    def test_run_sequence(self, cli_runner, store):
        outputs = [
            cli_runner.invoke(["run", "intro", "--times", "2", "--store", store]).stdout.strip()
            for _ in range(4)
        ]

        assert outputs == ["do", "do last-do", "before-done done", "done"]

    def test_run_json(self, cli_runner, store):
        result = cli_runner.invoke(
            ["run", "intro", "--times", "1", "--mark", "hello", "--store", store, "--json"]
        )

        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["fired"] == ["do", "last-do"]
        assert data["state"]["marking"] == "hello"
        jsonschema.validate(data["state"], load_schema("gate_state.schema.json"))

    def test_gate_version_resets(self, cli_runner, store):
        for _ in range(2):
            cli_runner.invoke(["run", "intro", "--store", store])

        result = cli_runner.invoke(
            ["run", "intro", "--gate-version", "2.0", "--store", store]
        )

        assert result.stdout.strip() == "do last-do"

    def test_build_version_upgrade_resets(self, cli_runner, store):
        cli_runner.invoke(["run", "intro", "--build-version", "1.0", "--store", store])

        same = cli_runner.invoke(["run", "intro", "--build-version", "1.0", "--store", store])
        upgraded = cli_runner.invoke(["run", "intro", "--build-version", "1.1", "--store", store])

        assert same.stdout.strip() == "before-done done"
        assert upgraded.stdout.strip() == "do last-do"

    def test_bypass_requires_debuggable(self, cli_runner, store):
        cli_runner.invoke(["run", "intro", "--store", store])

        release = cli_runner.invoke(["run", "intro", "--bypass", "--store", store])
        debug = cli_runner.invoke(
            ["run", "intro", "--bypass", "--debuggable", "--store", store]
        )

        assert release.stdout.strip() == "before-done done"
        assert debug.stdout.strip() == "do"

    def test_negative_times_rejected(self, cli_runner, store):
        result = cli_runner.invoke(["run", "intro", "--times", "-1", "--store", store, "--json"])

        assert result.exit_code == 1
        envelope = json.loads(result.stderr)
        assert envelope["error"]["code"] == "INVALID_ARGUMENT"
        assert envelope["error"]["details"]["argument"] == "times"
        jsonschema.validate(envelope, load_schema("error.schema.json"))

    def test_empty_name_rejected(self, cli_runner, store):
        result = cli_runner.invoke(["run", "", "--times", "2", "--store", store, "--json"])

        assert result.exit_code == 1
        assert json.loads(result.stderr)["error"]["details"]["argument"] == "name"

    @pytest.mark.parametrize(
        "command",
        [["run", "a\x1fb"], ["show", "a\x1fb"], ["mark", "a\x1fb", "m"], ["clear", "a\x1fb"]],
    )
    def test_delimiter_in_name_rejected(self, cli_runner, store, command):
        result = cli_runner.invoke(command + ["--store", store, "--json"])

        assert result.exit_code == 1
        envelope = json.loads(result.stderr)
        assert envelope["error"]["code"] == "INVALID_ARGUMENT"
        assert envelope["error"]["details"]["argument"] == "name"

    def test_missing_store(self, cli_runner, tmp_path):
        result = cli_runner.invoke(["run", "intro", "--store", str(tmp_path / "nope")])

        assert result.exit_code == 1
        assert "Store does not exist" in result.stderr
        assert "Hint:" in result.stderr

    def test_invalid_store(self, cli_runner, tmp_path):
        bogus = tmp_path / "bogus"
        bogus.mkdir()
        (bogus / "store.json").write_text("{invalid")

        result = cli_runner.invoke(["list", "--store", str(bogus), "--json"])

        assert result.exit_code == 1
        assert json.loads(result.stderr)["error"]["code"] == "STORE_INVALID"


class TestShowAndList:

    def test_show(self, cli_runner, store):
        cli_runner.invoke(["run", "intro", "--times", "3", "--mark", "m", "--store", store])

        result = cli_runner.invoke(["show", "intro", "--store", store])

        assert result.exit_code == 0
        assert "Count: 1" in result.stdout
        assert "Marking: m" in result.stdout

    def test_show_json_validates(self, cli_runner, store):
        cli_runner.invoke(["run", "intro", "--store", store])

        result = cli_runner.invoke(["show", "intro", "--store", store, "--json"])

        data = json.loads(result.stdout)
        jsonschema.validate(data, load_schema("gate_state.schema.json"))
        assert data["count"] == 1

    def test_show_unknown_gate(self, cli_runner, store):
        result = cli_runner.invoke(["show", "ghost", "--store", store, "--json"])

        assert result.exit_code == 1
        envelope = json.loads(result.stderr)
        assert envelope["error"]["code"] == "GATE_NOT_FOUND"
        assert envelope["error"]["details"]["name"] == "ghost"

    def test_list_empty(self, cli_runner, store):
        result = cli_runner.invoke(["list", "--store", store])

        assert "No gates found." in result.stdout

    def test_list_json(self, cli_runner, store):
        cli_runner.invoke(["run", "b", "--store", store])
        cli_runner.invoke(["run", "a", "--store", store])

        result = cli_runner.invoke(["list", "--store", store, "--json"])

        names = [g["name"] for g in json.loads(result.stdout)["gates"]]
        assert names == ["a", "b"]


class TestAdministrative:

    def test_set_count(self, cli_runner, store):
        result = cli_runner.invoke(["set-count", "intro", "3", "--store", store, "--json"])

        assert result.exit_code == 0
        assert json.loads(result.stdout)["count"] == 3

        run = cli_runner.invoke(["run", "intro", "--times", "3", "--store", store])
        assert run.stdout.strip() == "before-done done"

    def test_set_count_negative(self, cli_runner, store):
        result = cli_runner.invoke(["set-count", "intro", "-2", "--store", store])

        assert result.exit_code == 1
        assert "non-negative" in result.stderr

    def test_mark_overwrites(self, cli_runner, store):
        cli_runner.invoke(["run", "intro", "--mark", "first", "--store", store])

        cli_runner.invoke(["mark", "intro", "second", "--store", store])
        result = cli_runner.invoke(["show", "intro", "--store", store, "--json"])

        assert json.loads(result.stdout)["marking"] == "second"

    def test_clear(self, cli_runner, store):
        cli_runner.invoke(["run", "intro", "--store", store])

        result = cli_runner.invoke(["clear", "intro", "--store", store, "--json"])
        assert json.loads(result.stdout) == {"name": "intro", "cleared": True}

        again = cli_runner.invoke(["run", "intro", "--store", store])
        assert again.stdout.strip() == "do last-do"

    def test_clear_all(self, cli_runner, store):
        cli_runner.invoke(["run", "a", "--store", store])
        cli_runner.invoke(["run", "b", "--store", store])

        result = cli_runner.invoke(["clear-all", "--store", store])

        assert "Cleared 2 gate(s)" in result.stdout
        listing = cli_runner.invoke(["list", "--store", store])
        assert "No gates found." in listing.stdout


class TestConfiguration:

    def test_store_from_environment(self, cli_runner, tmp_path, monkeypatch):
        path = tmp_path / "env-store"
        monkeypatch.setenv("ONLYGATE_STORE", str(path))

        assert cli_runner.invoke(["init"]).exit_code == 0
        assert (path / "store.json").exists()

    def test_debuggable_from_environment(self, cli_runner, store, monkeypatch):
        monkeypatch.setenv("ONLYGATE_DEBUGGABLE", "true")
        cli_runner.invoke(["run", "intro", "--store", store])

        result = cli_runner.invoke(["run", "intro", "--bypass", "--store", store])

        assert result.stdout.strip() == "do"

    def test_no_command_prints_help(self, cli_runner):
        result = cli_runner.invoke([])

        assert result.exit_code == 1
        assert "usage" in result.output.lower()
