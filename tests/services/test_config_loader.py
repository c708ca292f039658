import pytest

from devbootstrap.errors import ConfigInvalid, ConfigMissing
from devbootstrap.services.config_loader import EnvFileLoader, SettingsLoader


def test_env_file_loader_parses_key_values(tmp_path):
    config_file = tmp_path / "setup.env"
    config_file.write_text(
        "# Developer identity\n"
        'GIT_USER_NAME="Ada Lovelace"\n'
        "export GIT_USER_EMAIL=ada@example.com\n"
        "BOOTSTRAP_MODE=uat\n"
        "USE_PNPM=Yes\n"
        "GITHUB_TOKEN=\n",
        encoding="utf-8",
    )

    config = EnvFileLoader().load(str(config_file))

    assert config.get("GIT_USER_NAME") == "Ada Lovelace"
    assert config.get("GIT_USER_EMAIL") == "ada@example.com"
    assert config.get("BOOTSTRAP_MODE") == "uat"
    assert config.flag("USE_PNPM") is True
    assert config.get("GITHUB_TOKEN") is None
    assert config.get("GITHUB_TOKEN", "fallback") == "fallback"


def test_env_file_loader_config_is_read_only(tmp_path):
    config_file = tmp_path / "setup.env"
    config_file.write_text("GIT_USER_NAME=a\nGIT_USER_EMAIL=b\n", encoding="utf-8")

    config = EnvFileLoader().load(str(config_file))

    with pytest.raises(TypeError):
        config.values["GIT_USER_NAME"] = "other"


def test_env_file_loader_missing_file_suggests_copying_example(tmp_path):
    with pytest.raises(ConfigMissing, match="setup.env.example"):
        EnvFileLoader().load(str(tmp_path / "setup.env"))


def test_env_file_loader_names_missing_required_key(tmp_path):
    config_file = tmp_path / "setup.env"
    config_file.write_text("GIT_USER_NAME=Ada\nGIT_USER_EMAIL=\n", encoding="utf-8")

    with pytest.raises(ConfigInvalid, match="GIT_USER_EMAIL"):
        EnvFileLoader().load(str(config_file))


def test_settings_loader_loads_yaml_mapping(tmp_path):
    settings_file = tmp_path / ".devbootstrap.yml"
    settings_file.write_text(
        "mode: uat\nhttp_timeout: 10\nassume_yes: true\n",
        encoding="utf-8",
    )

    loaded = SettingsLoader().load(str(settings_file))

    assert loaded["mode"] == "uat"
    assert loaded["http_timeout"] == 10
    assert loaded["assume_yes"] is True


def test_settings_loader_rejects_unknown_keys(tmp_path):
    settings_file = tmp_path / ".devbootstrap.yml"
    settings_file.write_text("unknown_key: true\n", encoding="utf-8")

    with pytest.raises(ConfigInvalid, match="Unknown settings keys"):
        SettingsLoader().load(str(settings_file))


def test_settings_loader_rejects_non_mapping_root(tmp_path):
    settings_file = tmp_path / ".devbootstrap.yml"
    settings_file.write_text("- one\n- two\n", encoding="utf-8")

    with pytest.raises(ConfigInvalid, match="mapping"):
        SettingsLoader().load(str(settings_file))


def test_settings_loader_treats_missing_path_argument_as_empty():
    assert SettingsLoader().load(None) == {}
