"""
Unit tests for settings loading
"""
import pytest
import yaml

from auto_classifier.config_loader import ConfigLoader, default_settings_data, get_config_loader
from auto_classifier.errors import ConfigError
from auto_classifier.models import CommandOption, ItemFailurePolicy, OutType


def write_settings(path, data):
    path.write_text(yaml.safe_dump(data), encoding="utf-8")
    return path


@pytest.fixture
def loader_paths(tmp_path, clean_env):
    return tmp_path / "auto_classifier.yaml", tmp_path / ".env"


class TestLoadSettings:
    def test_defaults_without_files(self, loader_paths):
        config_path, env_path = loader_paths
        settings = ConfigLoader(config_path, env_path).load_settings()

        assert settings.api_key is None
        assert settings.base_url == "https://api.openai.com/v1"
        assert settings.max_retries == 5
        assert settings.reliability_threshold == 0.2
        assert settings.command_option == CommandOption()

    def test_values_from_yaml(self, loader_paths):
        config_path, env_path = loader_paths
        write_settings(config_path, {
            "api_key": "sk-yaml",
            "vault": {"path": "/notes"},
            "max_retries": 3,
            "command_option": {
                "refs": "Science, History",
                "max_tags": 3,
                "out_type": "wikilink",
                "item_failure_policy": "abort",
            },
        })

        settings = ConfigLoader(config_path, env_path).load_settings()

        assert settings.api_key == "sk-yaml"
        assert settings.vault_path == "/notes"
        assert settings.max_retries == 3
        assert settings.command_option.refs == ["Science", "History"]
        assert settings.command_option.max_tags == 3
        assert settings.command_option.out_type == OutType.WIKILINK
        assert settings.command_option.item_failure_policy == ItemFailurePolicy.ABORT

    def test_environment_overrides_yaml(self, loader_paths, clean_env):
        """Test dotted keys are overridden by their upper-case underscore variable"""
        config_path, env_path = loader_paths
        write_settings(config_path, {"vault": {"path": "/notes"}, "command_option": {"max_tags": 3}})
        clean_env.setenv("VAULT_PATH", "/other")
        clean_env.setenv("COMMAND_OPTION_MAX_TAGS", "7")
        clean_env.setenv("COMMAND_OPTION_USE_REF", "false")

        settings = ConfigLoader(config_path, env_path).load_settings()

        assert settings.vault_path == "/other"
        assert settings.command_option.max_tags == 7
        assert settings.command_option.use_ref is False

    def test_api_key_from_dotenv(self, loader_paths):
        config_path, env_path = loader_paths
        env_path.write_text("OPENAI_API_KEY=sk-dotenv\n", encoding="utf-8")

        assert ConfigLoader(config_path, env_path).get_api_key() == "sk-dotenv"

    def test_invalid_yaml(self, loader_paths):
        config_path, env_path = loader_paths
        config_path.write_text("api_key: [unclosed\n", encoding="utf-8")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            ConfigLoader(config_path, env_path)

    def test_not_a_mapping(self, loader_paths):
        config_path, env_path = loader_paths
        config_path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            ConfigLoader(config_path, env_path)

    def test_invalid_command_option(self, loader_paths):
        config_path, env_path = loader_paths
        write_settings(config_path, {"command_option": {"out_type": "banner"}})
        with pytest.raises(ConfigError, match="command_option"):
            ConfigLoader(config_path, env_path).load_settings()

    def test_invalid_max_retries(self, loader_paths):
        config_path, env_path = loader_paths
        write_settings(config_path, {"max_retries": 0})
        with pytest.raises(ConfigError):
            ConfigLoader(config_path, env_path).load_settings()


class TestSaveSettings:
    def test_set_and_save(self, loader_paths):
        config_path, env_path = loader_paths
        loader = ConfigLoader(config_path, env_path)
        loader.set("command_option.max_tags", 2)
        loader.set("vault.path", "/notes")
        loader.save()

        reloaded = ConfigLoader(config_path, env_path).load_settings()
        assert reloaded.command_option.max_tags == 2
        assert reloaded.vault_path == "/notes"

    def test_save_rejects_invalid_option(self, loader_paths):
        """Test a bad value never reaches the settings file"""
        config_path, env_path = loader_paths
        loader = ConfigLoader(config_path, env_path)
        loader.set("command_option.max_tags", -3)

        with pytest.raises(ConfigError):
            loader.save()
        assert not config_path.exists()

    def test_default_settings_round_trip(self, loader_paths):
        config_path, env_path = loader_paths
        loader = ConfigLoader(config_path, env_path)
        loader.config_data = default_settings_data()
        loader.save()

        settings = ConfigLoader(config_path, env_path).load_settings()
        assert settings.command_option == CommandOption()
        assert not settings.api_key


class TestValidateConfig:
    def test_reports_missing_settings(self, loader_paths):
        config_path, env_path = loader_paths
        errors = ConfigLoader(config_path, env_path).validate_config()
        assert any("API key" in e for e in errors)
        assert any("Vault path" in e for e in errors)
        assert any("reference tags" in e for e in errors)

    def test_complete_settings(self, loader_paths):
        config_path, env_path = loader_paths
        write_settings(config_path, {
            "api_key": "sk-yaml",
            "vault": {"path": "/notes"},
            "command_option": {"refs": ["A"]},
        })
        assert ConfigLoader(config_path, env_path).validate_config() == []

    def test_global_loader_follows_path(self, loader_paths):
        config_path, _ = loader_paths
        assert get_config_loader(config_path).config_path == config_path
