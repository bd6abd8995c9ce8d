"""
Tests for the configuration module.
"""

from dataclasses import replace

import pytest

from bwenv.config import (
    BwenvConfig,
    ConfigurationError,
    ProviderConfig,
    STARTER_CONFIG,
    init_config,
)
from bwenv.envfile import WriteOrder
from bwenv.merge import MergePolicy


@pytest.fixture
def isolated(temp_dir, monkeypatch):
    """Run with an empty working directory and home directory."""
    home = temp_dir / "home"
    home.mkdir()
    monkeypatch.chdir(temp_dir)
    monkeypatch.setenv("HOME", str(home))
    return temp_dir


class TestProviderConfig:
    """Tests for the ProviderConfig dataclass."""

    def test_default_values(self):
        """Test default values."""
        config = ProviderConfig()

        assert config.type == "bitwarden"
        assert dict(config.options) == {}


class TestBwenvConfig:
    """Tests for the BwenvConfig class."""

    def test_defaults(self):
        """Test the built-in defaults."""
        config = BwenvConfig()

        assert config.default_project is None
        assert config.env_file == ".env"
        assert config.write_order is WriteOrder.SORTED
        assert config.merge_policy is MergePolicy.PRESERVE

    def test_no_config_file(self, isolated):
        """Test loading without any config file gives defaults."""
        config = BwenvConfig.load(environ={})

        assert config.source is None
        assert config.env_file == ".env"

    def test_load_nonexistent_file(self):
        """Test an explicitly named missing file is an error."""
        with pytest.raises(ConfigurationError, match="not found"):
            BwenvConfig.load("/nonexistent/path/config.yaml", environ={})

    def test_load_valid_config(self, temp_dir):
        """Test loading a valid configuration file."""
        config_path = temp_dir / ".bwenv.yaml"
        config_path.write_text(
            """
default_project: my-app
env_file: .env.local
write_order: insertion
merge_policy: overwrite
log_level: debug
provider:
  type: memory
  options:
    projects:
      my-app:
        A: "1"
"""
        )

        config = BwenvConfig.load(str(config_path), environ={})

        assert config.default_project == "my-app"
        assert config.env_file == ".env.local"
        assert config.write_order is WriteOrder.INSERTION
        assert config.merge_policy is MergePolicy.OVERWRITE
        assert config.log_level == "DEBUG"
        assert config.provider.type == "memory"
        assert config.provider.options["projects"] == {"my-app": {"A": "1"}}
        assert config.source == config_path

    def test_search_order(self, isolated):
        """Test .bwenv.yaml in the working directory is found first."""
        (isolated / ".bwenv.yaml").write_text("default_project: first\n")
        (isolated / "bwenv.yaml").write_text("default_project: second\n")

        assert BwenvConfig.load(environ={}).default_project == "first"

    def test_home_config(self, isolated):
        """Test the config in ~/.config is used as a fallback."""
        config_dir = isolated / "home" / ".config"
        config_dir.mkdir()
        (config_dir / "bwenv.yaml").write_text("default_project: from-home\n")

        assert BwenvConfig.load(environ={}).default_project == "from-home"

    def test_load_invalid_yaml(self, temp_dir):
        """Test that invalid YAML raises an error."""
        config_path = temp_dir / "invalid.yaml"
        config_path.write_text("invalid: yaml: content: [[[")

        with pytest.raises(ConfigurationError) as exc_info:
            BwenvConfig.load(str(config_path), environ={})

        assert exc_info.value.from_exception is not None

    def test_load_empty_yaml(self, temp_dir):
        """Test loading an empty YAML file."""
        config_path = temp_dir / "empty.yaml"
        config_path.write_text("")

        config = BwenvConfig.load(str(config_path), environ={})

        assert config == BwenvConfig(source=config_path)

    def test_non_mapping(self, temp_dir):
        """Test a YAML list is rejected."""
        config_path = temp_dir / "list.yaml"
        config_path.write_text("- a\n- b\n")

        with pytest.raises(ConfigurationError, match="mapping"):
            BwenvConfig.load(str(config_path), environ={})

    @pytest.mark.parametrize(
        "data,message",
        [
            ({"default_projekt": "x"}, "Unknown config option"),
            ({"provider": {"type": "memory", "token": "x"}}, "Unknown provider option"),
            ({"provider": "memory"}, "must be a mapping"),
            ({"write_order": "random"}, "Invalid write_order"),
            ({"merge_policy": "newest"}, "Unknown merge policy"),
            ({"log_level": "loud"}, "Invalid log_level"),
        ],
    )
    def test_invalid_options(self, data, message):
        """Test unrecognized options and values are rejected."""
        with pytest.raises(ConfigurationError, match=message):
            BwenvConfig.from_dict(data)

    def test_environment_overrides(self, temp_dir):
        """Test environment variables override the file."""
        config_path = temp_dir / ".bwenv.yaml"
        config_path.write_text("default_project: file-project\nenv_file: file.env\n")

        config = BwenvConfig.load(
            str(config_path),
            environ={
                "BWS_ACCESS_TOKEN": "0.token",
                "BWS_ORGANIZATION_ID": "org-1",
                "BWENV_PROJECT": "env-project",
                "BWENV_ENV_FILE": "env.env",
                "BWENV_LOG_LEVEL": "info",
            },
        )

        assert config.default_project == "env-project"
        assert config.env_file == "env.env"
        assert config.log_level == "INFO"
        assert config.access_token == "0.token"
        assert config.provider.options["organization_id"] == "org-1"

    def test_access_token_not_in_repr(self, isolated):
        """Test the access token never appears in repr."""
        config = BwenvConfig.load(environ={"BWS_ACCESS_TOKEN": "0.very-secret"})

        assert "very-secret" not in repr(config)

    def test_provider_options_include_token(self):
        """Test the provider factory receives the access token."""
        config = BwenvConfig.from_dict({"provider": {"options": {"organization_id": "org"}}})
        config = config.with_overrides(access_token="0.token")

        assert config.provider_options() == {"organization_id": "org", "access_token": "0.token"}

    def test_with_overrides_ignores_none(self):
        """Test None overrides keep the current value."""
        config = BwenvConfig(default_project="web")

        assert config.with_overrides(default_project=None, env_file="x.env") == BwenvConfig(
            default_project="web", env_file="x.env"
        )

    def test_with_overrides_replaces_provider(self):
        """Test a provider override keeps the configured options."""
        config = BwenvConfig.from_dict(
            {"provider": {"type": "bitwarden", "options": {"organization_id": "org"}}}
        )

        config = config.with_overrides(provider=replace(config.provider, type="memory"))

        assert config.provider == ProviderConfig(type="memory", options={"organization_id": "org"})

    def test_config_is_immutable(self):
        """Test configs cannot be changed after construction."""
        config = BwenvConfig()

        with pytest.raises(AttributeError):
            config.env_file = "other.env"


class TestInitConfig:
    """Tests for writing a starter config."""

    def test_init_writes_starter(self, temp_dir):
        """Test init writes a loadable starter file."""
        path = init_config(temp_dir / ".bwenv.yaml")

        assert path.read_text() == STARTER_CONFIG
        assert BwenvConfig.load(path, environ={}).default_project == "MyProject"

    def test_init_refuses_to_overwrite(self, temp_dir):
        """Test init does not clobber an existing file."""
        path = temp_dir / ".bwenv.yaml"
        path.write_text("default_project: mine\n")

        with pytest.raises(ConfigurationError, match="already exists"):
            init_config(path)

        assert path.read_text() == "default_project: mine\n"

    def test_init_force(self, temp_dir):
        """Test init --force overwrites."""
        path = temp_dir / ".bwenv.yaml"
        path.write_text("default_project: mine\n")

        init_config(path, force=True)

        assert path.read_text() == STARTER_CONFIG


class TestConfigurationError:
    """Tests for the ConfigurationError exception."""

    def test_error_message(self):
        """Test error message."""
        error = ConfigurationError("Invalid config")

        assert str(error) == "Invalid config"
        assert error.message == "Invalid config"
        assert error.from_exception is None

    def test_error_with_cause(self):
        """Test error keeps the original exception."""
        cause = ValueError("bad")
        error = ConfigurationError("Invalid config", cause)

        assert error.from_exception is cause
        assert error.__cause__ is cause
