"""Tests for configuration loading and merging."""
import pytest
import toml

from ensemble.config.manager import ConfigManager
from ensemble.config.schema import get_config_file
from ensemble.errors import ConfigError


def test_defaults_without_files():
    """Test defaults are used when no config file exists."""
    config = ConfigManager.get_config()

    assert config.review.max_iterations == 3
    assert ConfigManager.get_config() is config


def test_user_config_is_loaded():
    """Test values from the user config file override defaults."""
    get_config_file().write_text(toml.dumps({"review": {"max_iterations": 5}}))

    assert ConfigManager.load_config().review.max_iterations == 5


def test_project_config_overrides_user_config(project_dir):
    """Test project config takes precedence and dictionaries are deep-merged."""
    get_config_file().write_text(
        toml.dumps({"collaboration": {"max_turns": 8, "max_rounds": 4}})
    )
    (project_dir / ".ensemble.toml").write_text(toml.dumps({"collaboration": {"max_rounds": 2}}))

    config = ConfigManager.load_config()

    assert config.collaboration.max_rounds == 2
    assert config.collaboration.max_turns == 8


def test_project_config_found_in_parent(project_dir):
    """Test the project file is found from a subdirectory."""
    (project_dir / ".ensemble.toml").write_text(toml.dumps({"tasks": {"preset": "read_only"}}))
    nested = project_dir / "src" / "pkg"
    nested.mkdir(parents=True)

    with pytest.MonkeyPatch.context() as mp:
        mp.chdir(nested)
        assert ConfigManager.load_config().tasks.preset == "read_only"


def test_invalid_toml_raises_config_error():
    get_config_file().write_text("review = [")

    with pytest.raises(ConfigError):
        ConfigManager.load_config()


def test_invalid_value_raises_config_error():
    get_config_file().write_text(toml.dumps({"collaboration": {"consensus_threshold": 3}}))

    with pytest.raises(ConfigError):
        ConfigManager.load_config()


def test_set_value_persists():
    """Test set_value validates, caches and writes the user file."""
    ConfigManager.set_value("review.max_iterations", 7)

    assert ConfigManager.get_value("review.max_iterations") == 7
    ConfigManager.reset()
    assert ConfigManager.get_config().review.max_iterations == 7


def test_set_value_rejects_invalid():
    with pytest.raises(ConfigError):
        ConfigManager.set_value("collaboration.consensus_threshold", 2.0)


def test_get_value_missing_returns_default():
    assert ConfigManager.get_value("nope.nothing", "fallback") == "fallback"
    assert ConfigManager.get_value("global.color") is True
