from pathlib import Path

import pytest

from txdl.exceptions import ConfigurationError
from txdl.models.config import DownloadConfig
from txdl.storage.config_manager import ConfigManager, default_config_file
from txdl.utils.formatting import MIB


@pytest.fixture
def config_file(tmp_path) -> Path:
    path = tmp_path / "config.ini"
    path.write_text(
        "[DEFAULT]\n"
        "max_connections = 8\n"
        "timeout = 30\n"
        "engine = native\n"
        "check_certificate = yes\n"
    )
    return path


def test_defaults_without_file_or_environment(tmp_path):
    manager = ConfigManager(tmp_path / "missing.ini", environ={})
    config = manager.load_config()

    assert config.engine == "aria2"
    assert config.max_connections == 16
    assert config.min_split_size == MIB
    assert config.max_concurrent_downloads == 3
    assert config.timeout == 60
    assert config.retry_wait == 3
    assert config.max_tries == 5
    assert config.download_dir == Path.home() / "Downloads"


def test_file_values_are_loaded(config_file):
    config = ConfigManager(config_file, environ={}).load_config()
    assert config.max_connections == 8
    assert config.timeout == 30
    assert config.engine == "native"
    assert config.check_certificate is True


def test_environment_overrides_file(config_file):
    environ = {"ARIA2_MAX_CONNECTIONS": "4", "ARIA2_MIN_SPLIT_SIZE": "2M"}
    config = ConfigManager(config_file, environ=environ).load_config()
    assert config.max_connections == 4
    assert config.min_split_size == 2 * MIB
    assert config.timeout == 30


def test_cli_overrides_environment(config_file, tmp_path):
    environ = {"TXDL_ENGINE": "native", "TXDL_DOWNLOAD_DIR": str(tmp_path / "env")}
    config = ConfigManager(config_file, environ=environ).load_config(
        {"engine": "aria2", "download_dir": str(tmp_path / "cli")}
    )
    assert config.engine == "aria2"
    assert config.download_dir == tmp_path / "cli"


def test_none_cli_values_are_ignored(config_file):
    config = ConfigManager(config_file, environ={}).load_config(
        {"engine": None, "download_dir": None}
    )
    assert config.engine == "native"


def test_download_dir_expands_home():
    config = DownloadConfig(download_dir="~/somewhere")
    assert config.download_dir == Path.home() / "somewhere"


@pytest.mark.parametrize(
    "environ",
    [
        {"ARIA2_TIMEOUT": "soon"},
        {"ARIA2_MAX_CONNECTIONS": "32"},
        {"ARIA2_MAX_CONNECTIONS": "0"},
        {"ARIA2_MIN_SPLIT_SIZE": "lots"},
        {"ARIA2_MIN_SPLIT_SIZE": "2048M"},
        {"ARIA2_RETRY_WAIT": "-1"},
        {"TXDL_ENGINE": "curl"},
    ],
)
def test_invalid_environment_raises(tmp_path, environ):
    manager = ConfigManager(tmp_path / "missing.ini", environ=environ)
    with pytest.raises(ConfigurationError):
        manager.load_config()


def test_invalid_file_value_raises(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\ntimeout = later\n")
    with pytest.raises(ConfigurationError, match="Invalid value"):
        ConfigManager(path, environ={}).load_config()


def test_unparseable_file_raises(tmp_path):
    path = tmp_path / "config.ini"
    path.write_text("timeout = 5\n")
    with pytest.raises(ConfigurationError, match="Error parsing"):
        ConfigManager(path, environ={}).load_config()


def test_unknown_file_keys_are_ignored(tmp_path, caplog):
    path = tmp_path / "config.ini"
    path.write_text("[DEFAULT]\ncolour = blue\ntimeout = 12\n")
    config = ConfigManager(path, environ={}).load_config()
    assert config.timeout == 12
    assert "colour" in caplog.text


def test_config_file_location_override(monkeypatch, tmp_path):
    monkeypatch.setenv("TXDL_CONFIG", str(tmp_path / "custom.ini"))
    assert default_config_file() == tmp_path / "custom.ini"


def test_connection_count_is_min_of_split_and_connections():
    assert DownloadConfig(split=16, max_connections=4).connection_count == 4
    assert DownloadConfig(split=2, max_connections=16).connection_count == 2


def test_describe_includes_config_file(tmp_path):
    manager = ConfigManager(tmp_path / "missing.ini", environ={})
    data = manager.describe(manager.load_config())
    assert data["config_file"] == str(tmp_path / "missing.ini")
    assert data["engine"] == "aria2"


def test_relative_download_dir_is_made_absolute(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    config = ConfigManager(tmp_path / "missing.ini", environ={}).load_config(
        {"download_dir": "dl"}
    )
    assert config.download_dir.is_absolute()
    assert config.download_dir == tmp_path / "dl"
