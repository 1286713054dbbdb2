"""Tests for configuration management."""

import tempfile
from pathlib import Path

import pytest

from mcbridge.validation.config import BridgeConfig, Config, ConfigError


class TestConfig:
    """Tests for Config class."""

    @pytest.fixture
    def temp_config_dir(self):
        """Create a temporary config directory."""
        with tempfile.TemporaryDirectory() as tmpdir:
            yield Path(tmpdir)

    @pytest.fixture(autouse=True)
    def no_global_config(self, monkeypatch, temp_config_dir):
        """Point the global config at an empty directory."""
        monkeypatch.setattr(Config, "GLOBAL_CONFIG_DIR", temp_config_dir / "global")

    def test_deep_merge(self):
        """Test deep merging of dictionaries."""
        config = Config()

        base = {
            "a": 1,
            "b": {"c": 2, "d": 3},
            "e": [1, 2, 3],
        }

        override = {
            "b": {"c": 10, "f": 5},
            "g": "new",
        }

        result = config._deep_merge(base, override)

        assert result["a"] == 1
        assert result["b"]["c"] == 10
        assert result["b"]["d"] == 3
        assert result["b"]["f"] == 5
        assert result["e"] == [1, 2, 3]
        assert result["g"] == "new"

    def test_get_merged_config(self):
        """Test that local overrides global and overrides win over both."""
        config = Config(
            global_config={"engine": {"timeout_seconds": 100, "terraform_binary": "tofu"}},
            local_config={"engine": {"timeout_seconds": 50}},
            overrides={"logging": {"level": "debug"}},
        )
        merged = config.merged

        assert merged.engine.timeout_seconds == 50
        assert merged.engine.terraform_binary == "tofu"
        assert merged.logging.level == "DEBUG"

    def test_invalid_values_raise_config_error(self):
        """Test that schema violations surface as ConfigError."""
        config = Config(local_config={"confirmation": {"ttl_seconds": 0}})
        with pytest.raises(ConfigError):
            _ = config.merged

        config = Config(local_config={"logging": {"level": "LOUD"}})
        with pytest.raises(ConfigError):
            _ = config.merged

    def test_load_explicit_file(self, temp_config_dir):
        """Test loading an explicit config file."""
        path = temp_config_dir / "bridge.yaml"
        path.write_text("engine:\n  max_output_bytes: 4096\nproject:\n  root: /srv/infra\n")

        config = Config.load(path)

        assert config.merged.engine.max_output_bytes == 4096
        assert config.merged.project.root == "/srv/infra"

    def test_load_missing_explicit_file(self, temp_config_dir):
        with pytest.raises(ConfigError):
            Config.load(temp_config_dir / "nope.yaml")

    def test_non_mapping_file(self, temp_config_dir):
        path = temp_config_dir / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError):
            Config.load(path)

    def test_empty_file(self, temp_config_dir):
        path = temp_config_dir / "empty.yaml"
        path.write_text("")
        assert Config.load(path).merged == BridgeConfig()


class TestResolveProjectRoot:
    """Tests for project root priority."""

    def test_cli_wins(self, monkeypatch, tmp_path):
        monkeypatch.setenv("MCBRIDGE_PROJECT_ROOT", str(tmp_path / "env"))
        config = Config(local_config={"project": {"root": str(tmp_path / "cfg")}})

        assert config.resolve_project_root(str(tmp_path / "cli")) == tmp_path / "cli"

    def test_env_before_config(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PROJECT_DIR", str(tmp_path / "env"))
        config = Config(local_config={"project": {"root": str(tmp_path / "cfg")}})

        assert config.resolve_project_root() == tmp_path / "env"

    def test_config_before_cwd(self, tmp_path):
        config = Config(local_config={"project": {"root": str(tmp_path / "cfg")}})
        assert config.resolve_project_root() == tmp_path / "cfg"

    def test_defaults_to_cwd(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        assert Config().resolve_project_root() == Path.cwd()

    def test_relative_is_made_absolute(self, monkeypatch, tmp_path):
        monkeypatch.chdir(tmp_path)
        root = Config().resolve_project_root("infra")
        assert root.is_absolute()
        assert root == Path.cwd() / "infra"


class TestBridgeConfig:
    """Tests for BridgeConfig schema."""

    def test_default_config(self):
        """Test creating default configuration."""
        config = BridgeConfig()

        assert config.engine.terraform_binary == "terraform"
        assert config.engine.max_output_bytes == 1_048_576
        assert config.confirmation.ttl_seconds == 300
        assert config.logging.level == "INFO"
        assert ".git" in config.project.exclude_patterns
