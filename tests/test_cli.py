"""
Tests for the command-line interface.
"""

import pytest

from bwenv import __version__
from bwenv.cli import (
    EXIT_CONFIG,
    EXIT_IO,
    EXIT_OK,
    EXIT_PARSE,
    EXIT_PROVIDER,
    EXIT_SAFETY_GATE,
    build_parser,
    main,
)
from bwenv.providers import ProviderInfo, ProviderRegistry
from bwenv.providers.memory import MemoryProvider


@pytest.fixture
def store():
    """The remote store shared by every CLI run in a test."""
    return MemoryProvider({"web": {"API_KEY": "remote-secret-value", "DB_URL": "postgres://db"}})


@pytest.fixture
def registry(store):
    """A registry whose memory provider always returns the shared store."""
    registry = ProviderRegistry()
    registry.register(ProviderInfo(name="memory", description="test store"), lambda options: store)
    return registry


@pytest.fixture
def workspace(temp_dir, monkeypatch):
    """A project directory with a config pointing at the memory provider."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.chdir(temp_dir)
    (temp_dir / ".bwenv.yaml").write_text("default_project: web\nprovider:\n  type: memory\n")
    return temp_dir


class TestParser:
    """Tests for argument parsing."""

    def test_pull_flags(self):
        """Test pull options are parsed."""
        args = build_parser().parse_args(["pull", "-p", "web", "-o", "x.env", "--force", "--merge"])

        assert args.command == "pull"
        assert args.project == "web"
        assert args.output == "x.env"
        assert args.force and args.merge

    def test_verbosity(self):
        """Test -v can be repeated."""
        args = build_parser().parse_args(["-vv", "status"])

        assert args.verbose == 2

    def test_command_required(self):
        """Test a subcommand is required."""
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_version(self, capsys):
        """Test --version prints the version."""
        with pytest.raises(SystemExit):
            main(["--version"])

        assert __version__ in capsys.readouterr().out


class TestPushCommand:
    """Tests for `bwenv push`."""

    def test_push(self, workspace, registry, store, capsys):
        """Test pushing new keys."""
        (workspace / ".env").write_text("NEW_KEY=1\n")

        assert main(["push"], registry=registry) == EXIT_OK

        assert store.snapshot("project-1")["NEW_KEY"] == "1"
        assert "1 created" in capsys.readouterr().out

    def test_push_reports_skipped_keys(self, workspace, registry, store, capsys):
        """Test differing remote keys are listed by name only."""
        (workspace / ".env").write_text("API_KEY=local-secret-value\n")

        assert main(["push"], registry=registry) == EXIT_OK

        captured = capsys.readouterr()
        assert "API_KEY" in captured.out
        assert "local-secret-value" not in captured.out + captured.err
        assert store.snapshot("project-1")["API_KEY"] == "remote-secret-value"

    def test_push_overwrite(self, workspace, registry, store):
        """Test --overwrite replaces remote values."""
        (workspace / ".env").write_text("API_KEY=local\n")

        assert main(["push", "--overwrite"], registry=registry) == EXIT_OK

        assert store.snapshot("project-1")["API_KEY"] == "local"

    def test_push_parse_error(self, workspace, registry, store, capsys):
        """Test a malformed file exits with the parse error code."""
        (workspace / ".env").write_text("A=1\nBROKEN\n")

        assert main(["push"], registry=registry) == EXIT_PARSE

        assert "line 2" in capsys.readouterr().out
        assert store.calls == []

    def test_push_missing_file(self, workspace, registry):
        """Test a missing input file exits with the IO error code."""
        assert main(["push", "-i", "missing.env"], registry=registry) == EXIT_IO

    def test_push_named_input_and_project(self, workspace, registry, store):
        """Test -i and -p select the file and project."""
        (workspace / ".bwenv.yaml").write_text("provider:\n  type: memory\n")
        (workspace / "custom.env").write_text("CUSTOM=1\n")

        assert main(["push", "-p", "web", "-i", "custom.env"], registry=registry) == EXIT_OK

        assert store.snapshot("project-1")["CUSTOM"] == "1"
        assert not (workspace / ".env").exists()


class TestPullCommand:
    """Tests for `bwenv pull`."""

    def test_pull_creates_file(self, workspace, registry):
        """Test pulling into a new file."""
        assert main(["pull"], registry=registry) == EXIT_OK

        assert (workspace / ".env").read_text() == (
            "API_KEY=remote-secret-value\nDB_URL=postgres://db\n"
        )

    def test_pull_safety_gate(self, workspace, registry, capsys):
        """Test an existing file needs --force or --merge."""
        (workspace / ".env").write_text("LOCAL=1\n")

        assert main(["pull"], registry=registry) == EXIT_SAFETY_GATE

        assert "--merge" in capsys.readouterr().out
        assert (workspace / ".env").read_text() == "LOCAL=1\n"

    def test_pull_merge(self, workspace, registry):
        """Test --merge keeps local values."""
        (workspace / ".env").write_text("API_KEY=local\nLOCAL=1\n")

        assert main(["pull", "--merge"], registry=registry) == EXIT_OK

        assert (workspace / ".env").read_text() == (
            "API_KEY=local\nDB_URL=postgres://db\nLOCAL=1\n"
        )

    def test_pull_unknown_project(self, workspace, registry, capsys):
        """Test an unknown project exits with the provider error code."""
        assert main(["pull", "-p", "mobile"], registry=registry) == EXIT_PROVIDER

        assert "mobile" in capsys.readouterr().out

    def test_pull_named_output(self, workspace, registry):
        """Test -o writes to the named file."""
        assert main(["pull", "-o", "out.env"], registry=registry) == EXIT_OK

        assert "API_KEY=remote-secret-value" in (workspace / "out.env").read_text()
        assert not (workspace / ".env").exists()


class TestStatusCommand:
    """Tests for `bwenv status`."""

    def test_status_in_sync(self, workspace, registry, capsys):
        """Test matching sides report in sync."""
        (workspace / ".env").write_text("API_KEY=remote-secret-value\nDB_URL=postgres://db\n")

        assert main(["status"], registry=registry) == EXIT_OK

        assert "In sync" in capsys.readouterr().out

    def test_status_shows_keys_not_values(self, workspace, registry, capsys):
        """Test drift output names keys and never values."""
        (workspace / ".env").write_text("API_KEY=local-secret-value\nLOCAL_ONLY=abc\n")

        assert main(["-vv", "status"], registry=registry) == EXIT_OK

        captured = capsys.readouterr()
        for key in ("API_KEY", "DB_URL", "LOCAL_ONLY"):
            assert key in captured.out
        for value in ("local-secret-value", "remote-secret-value", "postgres://db"):
            assert value not in captured.out
            assert value not in captured.err

    def test_status_missing_file(self, workspace, registry, capsys):
        """Test a missing local file is reported."""
        assert main(["status"], registry=registry) == EXIT_OK

        assert "not found" in capsys.readouterr().out

    def test_status_named_env_file(self, workspace, registry, capsys):
        """Test -e compares the named file instead of the default."""
        (workspace / ".env").write_text("LOCAL_ONLY=1\n")
        (workspace / "other.env").write_text("API_KEY=remote-secret-value\nDB_URL=postgres://db\n")

        assert main(["status", "-e", "other.env"], registry=registry) == EXIT_OK

        assert "In sync" in capsys.readouterr().out


class TestValidateCommand:
    """Tests for `bwenv validate`."""

    def test_valid(self, workspace, capsys):
        """Test a valid file."""
        (workspace / ".env").write_text("A=1\nB=2\n")

        assert main(["validate"]) == EXIT_OK

        assert "2 variables" in capsys.readouterr().out

    def test_malformed_line(self, workspace, capsys):
        """Test a malformed line is reported with its line number."""
        (workspace / "bad.env").write_text("A=1\n\nKEYVALUE\n")

        assert main(["validate", "-i", "bad.env"]) == EXIT_PARSE

        assert "line 3" in capsys.readouterr().out

    def test_missing_file(self, workspace):
        """Test validating a missing file exits with the IO error code."""
        assert main(["validate", "-i", "missing.env"]) == EXIT_IO


class TestListCommand:
    """Tests for `bwenv list`."""

    def test_list_projects(self, workspace, registry, capsys):
        """Test listing projects."""
        assert main(["list"], registry=registry) == EXIT_OK

        assert "web" in capsys.readouterr().out

    def test_list_keys(self, workspace, registry, capsys):
        """Test listing secret names hides values."""
        assert main(["list", "-p", "web"], registry=registry) == EXIT_OK

        out = capsys.readouterr().out
        assert "API_KEY" in out
        assert "remote-secret-value" not in out


class TestConfigErrors:
    """Tests for configuration failures."""

    def test_no_project(self, workspace, registry):
        """Test a missing project exits with the config error code."""
        (workspace / ".bwenv.yaml").write_text("provider:\n  type: memory\n")

        assert main(["status"], registry=registry) == EXIT_CONFIG

    def test_unknown_provider(self, workspace, registry, capsys):
        """Test an unknown provider exits with the config error code."""
        assert main(["--provider", "vault", "status"], registry=registry) == EXIT_CONFIG

        assert "vault" in capsys.readouterr().out

    def test_invalid_config(self, workspace, registry):
        """Test an invalid config file exits with the config error code."""
        (workspace / ".bwenv.yaml").write_text("write_order: random\n")

        assert main(["status"], registry=registry) == EXIT_CONFIG

    def test_missing_config_path(self, workspace, registry):
        """Test --config naming a missing file exits with the config error code."""
        assert main(["--config", "nope.yaml", "status"], registry=registry) == EXIT_CONFIG


class TestInitCommand:
    """Tests for `bwenv init`."""

    def test_init(self, temp_dir, monkeypatch):
        """Test init writes a starter config."""
        monkeypatch.chdir(temp_dir)
        monkeypatch.setenv("HOME", str(temp_dir))

        assert main(["init"]) == EXIT_OK

        assert (temp_dir / ".bwenv.yaml").exists()

    def test_init_existing(self, workspace):
        """Test init refuses to overwrite an existing config."""
        assert main(["init"]) == EXIT_CONFIG

        assert main(["init", "--force"]) == EXIT_OK
