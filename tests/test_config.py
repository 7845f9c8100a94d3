import logging

import pytest
import yaml

from ashcode.config import (CONFIG_FIELDS, DEFAULT_AUTO_APPROVE, Config, _validate_bool,
                            _validate_float_range, _validate_int_range, _validate_str_list,
                            validate_config_value)
from ashcode.context_window import Budget
from ashcode.errors import ConfigError


class TestLoad:
    def test_defaults_without_file(self, isolated_config, tmp_dir):
        config = Config.load(str(tmp_dir))

        assert config.api.model == "gpt-4o-mini"
        assert config.api.base_url == "https://api.openai.com/v1"
        assert config.tools.auto_approve_tools == DEFAULT_AUTO_APPROVE
        assert config.max_iterations == 30
        assert config.config_source == ""
        assert config.tools.working_dir == str(tmp_dir.resolve())

    def test_project_file(self, isolated_config, config_yaml_file, tmp_dir):
        config = Config.load(str(tmp_dir))

        assert config.api.model == "local-model"
        assert config.api.api_key == "sk-test"
        assert config.api.temperature == 0.2
        assert config.tools.auto_approve_tools == ["read_file", "list_directory"]
        assert config.tools.command_timeout == 30
        assert config.max_iterations == 10
        assert config.config_source == str(config_yaml_file.resolve())

    def test_budget_from_context_section(self, isolated_config, config_yaml_file, tmp_dir):
        budget = Config.load(str(tmp_dir)).budget

        assert budget == Budget(max_messages=20, max_tokens=8000, compaction_ratio=0.75,
                                auto_compact=True)

    def test_git_root_file_found_from_subdirectory(self, isolated_config, tmp_path):
        (tmp_path / ".git").mkdir()
        (tmp_path / ".ashcode.yml").write_text("api:\n  model: from-git-root\n")
        sub = tmp_path / "pkg" / "mod"
        sub.mkdir(parents=True)

        config = Config.load(str(sub))

        assert config.api.model == "from-git-root"
        assert config.project_root == str(sub.resolve())

    def test_project_file_wins_over_git_root(self, isolated_config, tmp_path):
        (tmp_path / ".git").mkdir()
        (tmp_path / ".ashcode.yml").write_text("api:\n  model: root\n")
        sub = tmp_path / "sub"
        sub.mkdir()
        (sub / ".ashcode.yml").write_text("api:\n  model: project\n")

        assert Config.load(str(sub)).api.model == "project"

    def test_explicit_path(self, isolated_config, tmp_path):
        path = tmp_path / "custom.yml"
        path.write_text(yaml.dump({"max-iterations": 5}))

        config = Config.load(str(tmp_path), config_path=str(path))

        assert config.max_iterations == 5
        assert config.config_source == str(path)

    def test_explicit_path_missing(self, isolated_config, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            Config.load(str(tmp_path), config_path=str(tmp_path / "nope.yml"))

    def test_non_mapping_file(self, isolated_config, tmp_path):
        (tmp_path / ".ashcode.yml").write_text("- just\n- a list\n")

        with pytest.raises(ConfigError, match="must be a mapping"):
            Config.load(str(tmp_path))

    def test_invalid_yaml(self, isolated_config, tmp_path):
        (tmp_path / ".ashcode.yml").write_text("api: [unclosed\n")

        with pytest.raises(ConfigError, match="Cannot read config"):
            Config.load(str(tmp_path))

    def test_bad_value_is_clamped_with_warning(self, isolated_config, tmp_path, caplog,
                                               monkeypatch):
        (tmp_path / ".ashcode.yml").write_text("api:\n  temperature: 5\n")
        monkeypatch.setattr(logging.getLogger("ashcode"), "propagate", True)

        with caplog.at_level(logging.WARNING, logger="ashcode.config"):
            config = Config.load(str(tmp_path))

        assert config.api.temperature == 2.0
        assert "api.temperature" in caplog.text

    def test_env_overrides_file(self, isolated_config, config_yaml_file, tmp_dir, monkeypatch):
        monkeypatch.setenv("ASHCODE_API_KEY", "sk-env")
        monkeypatch.setenv("ASHCODE_API_MODEL", "env-model")

        config = Config.load(str(tmp_dir))

        assert config.api.api_key == "sk-env"
        assert config.api.model == "env-model"

    def test_openai_key_env(self, isolated_config, tmp_path, monkeypatch):
        monkeypatch.setenv("OPENAI_API_KEY", " sk-openai ")

        assert Config.load(str(tmp_path)).api.api_key == "sk-openai"


class TestOverridesAndValidation:
    def test_cli_overrides(self):
        config = Config()

        config.apply_overrides(api_key="sk-cli", model="cli-model", base_url="http://x/v1/")

        assert (config.api.api_key, config.api.model, config.api.base_url) == (
            "sk-cli", "cli-model", "http://x/v1")

    def test_missing_key(self):
        with pytest.raises(ConfigError, match="API key is required"):
            Config().validate()

    def test_missing_model(self):
        config = Config()
        config.api.api_key = "k"
        config.api.model = ""

        with pytest.raises(ConfigError, match="Model name is required"):
            config.validate()

    def test_summary_hides_key(self):
        config = Config()
        config.api.api_key = "sk-secret"

        summary = config.summary()

        assert summary["API key"] == "set"
        assert "sk-secret" not in str(summary)


class TestFieldAccess:
    def test_get_and_set(self):
        config = Config()

        ok, err = config.set_config_value("tools.command-timeout", "45")

        assert ok and err == ""
        assert config.tools.command_timeout == 45
        assert config.get_config_value("tools.command-timeout") == 45

    def test_set_rejects_invalid(self):
        config = Config()

        ok, err = config.set_config_value("context.auto-compact", "maybe")

        assert ok is False
        assert "true/false" in err
        assert config.context.auto_compact is True

    def test_set_list_from_comma_string(self):
        config = Config()

        config.set_config_value("tools.auto-approve-tools", "read_file, git_grep,read_file")

        assert config.tools.auto_approve_tools == ["read_file", "git_grep"]

    def test_unknown_key(self):
        assert Config().get_config_value("nope") is None
        assert validate_config_value("nope", 1)[0] is False

    def test_every_field_has_a_home(self):
        config = Config()
        for key in CONFIG_FIELDS:
            assert config.get_config_value(key) is not None or key == "api.api-key"


class TestValidators:
    def test_int_range(self):
        assert _validate_int_range("7", 1, 10) == (True, 7, "")
        assert _validate_int_range(50, 1, 10)[:2] == (False, 10)
        assert _validate_int_range(True, 1, 10)[0] is False

    def test_float_range(self):
        assert _validate_float_range("0.5", 0.0, 1.0) == (True, 0.5, "")
        assert _validate_float_range(-1, 0.0, 1.0)[:2] == (False, 0.0)

    @pytest.mark.parametrize("value,expected", [("yes", True), ("off", False), (True, True), ("1", True)])
    def test_bool(self, value, expected):
        assert _validate_bool(value) == (True, expected, "")

    def test_str_list(self):
        assert _validate_str_list(["a", "", "b", "a"]) == (True, ["a", "b"], "")
        assert _validate_str_list(3)[0] is False

    def test_url(self):
        assert validate_config_value("api.base-url", "ftp://x")[0] is False
        assert validate_config_value("api.base-url", "https://x/v1/") == (True, "https://x/v1", "")
