import sys
from pathlib import Path

import pytest

from cmcp.config import (
    Config,
    ConfigError,
    HttpServerConfig,
    Scope,
    SseServerConfig,
    StdioServerConfig,
    default_config_path,
    project_config_path,
    server_config_from_dict,
)


@pytest.fixture
def linux_env(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "linux")
    xdg = tmp_path / "xdg"
    monkeypatch.setenv("XDG_CONFIG_HOME", str(xdg))
    monkeypatch.chdir(tmp_path)
    return xdg


def sample_config():
    return Config(
        servers={
            "web": HttpServerConfig(
                url="https://mcp.example.com/mcp",
                auth="token",
                headers={"X-Trace": "on"},
            ),
            "events": SseServerConfig(url="https://sse.example.com/sse"),
            "local": StdioServerConfig(
                command="node", args=["server.js"], env={"MODE": "env:MODE"}
            ),
        }
    )


@pytest.mark.parametrize(
    "text, expected",
    [
        ("user", Scope.USER),
        ("global", Scope.USER),
        ("project", Scope.PROJECT),
        ("local", Scope.LOCAL),
    ],
)
def test_scope_from_str(text, expected):
    assert Scope.from_str(text) is expected


def test_scope_from_str_unknown():
    with pytest.raises(ConfigError, match="unknown scope"):
        Scope.from_str("team")


def test_project_config_path():
    assert project_config_path() == Path(".cmcp.toml")


def test_scope_config_paths(linux_env):
    assert Scope.PROJECT.config_path() == project_config_path()
    assert Scope.USER.config_path() == default_config_path()
    assert Scope.LOCAL.config_path() == default_config_path()


def test_default_path_uses_xdg(linux_env):
    assert default_config_path() == linux_env / "code-mode-mcp" / "config.toml"


def test_default_path_linux_home(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_config_path() == tmp_path / ".config" / "code-mode-mcp" / "config.toml"


def test_default_path_macos(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "darwin")
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "ignored"))
    monkeypatch.setenv("HOME", str(tmp_path))
    assert default_config_path() == tmp_path / ".config" / "code-mode-mcp" / "config.toml"


def test_default_path_windows(monkeypatch, tmp_path):
    monkeypatch.setattr(sys, "platform", "win32")
    monkeypatch.setenv("APPDATA", str(tmp_path))
    assert default_config_path() == tmp_path / "code-mode-mcp" / "config.toml"


def test_default_path_without_environment(monkeypatch):
    monkeypatch.setattr(sys, "platform", "linux")
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    monkeypatch.delenv("HOME", raising=False)
    with pytest.raises(ConfigError, match="could not determine config directory"):
        default_config_path()


def test_load_missing_file_is_empty(tmp_path):
    assert Config.load_from(tmp_path / "absent.toml").servers == {}


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "nested" / "dir" / "config.toml"
    original = sample_config()
    original.save_to(path)
    assert path.exists()
    assert Config.load_from(path) == original


def test_saved_file_is_tagged_by_transport(tmp_path):
    path = tmp_path / "config.toml"
    sample_config().save_to(path)
    text = path.read_text()
    assert 'transport = "stdio"' in text
    assert 'transport = "http"' in text
    assert 'transport = "sse"' in text


def test_empty_optional_fields_are_omitted(tmp_path):
    path = tmp_path / "config.toml"
    Config(servers={"s": StdioServerConfig(command="run")}).save_to(path)
    text = path.read_text()
    assert "args" not in text
    assert "env" not in text


def test_load_handwritten_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        '[servers.canva]\ntransport = "http"\nurl = "https://canva.example.com"\n'
        '\n[servers.fs]\ntransport = "stdio"\ncommand = "fs-server"\nargs = ["--root", "/tmp"]\n'
    )
    cfg = Config.load_from(path)
    assert cfg.servers["canva"] == HttpServerConfig(url="https://canva.example.com")
    assert cfg.servers["fs"] == StdioServerConfig(command="fs-server", args=["--root", "/tmp"])


def test_load_invalid_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[servers\n")
    with pytest.raises(ConfigError, match="failed to parse config"):
        Config.load_from(path)


def test_load_unknown_transport(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[servers.x]\ntransport = "carrier-pigeon"\n')
    with pytest.raises(ConfigError, match="failed to parse config"):
        Config.load_from(path)


def test_server_config_missing_url():
    with pytest.raises(ConfigError, match="url"):
        server_config_from_dict({"transport": "http"})


def test_server_config_missing_transport():
    with pytest.raises(ConfigError, match="transport"):
        server_config_from_dict({"command": "x"})


@pytest.mark.parametrize("name", ["web", "events", "local"])
def test_server_config_dict_round_trip(name):
    cfg = sample_config().servers[name]
    assert server_config_from_dict(cfg.to_dict()) == cfg


def test_add_and_remove_server():
    cfg = Config()
    cfg.add_server("a", StdioServerConfig(command="a"))
    assert "a" in cfg.servers
    assert cfg.remove_server("a") is True
    assert cfg.remove_server("a") is False
    assert cfg.servers == {}


def test_save_and_load_default_path(linux_env):
    original = sample_config()
    original.save()
    assert (linux_env / "code-mode-mcp" / "config.toml").exists()
    assert Config.load() == original


def test_load_merged_priority(linux_env, tmp_path):
    Config(
        servers={
            "shared": StdioServerConfig(command="user-cmd"),
            "user_only": StdioServerConfig(command="u"),
        }
    ).save()
    Config(
        servers={
            "shared": StdioServerConfig(command="project-cmd"),
            "project_only": StdioServerConfig(command="p"),
        }
    ).save_to(tmp_path / ".cmcp.toml")
    explicit = tmp_path / "explicit.toml"
    Config(servers={"project_only": StdioServerConfig(command="explicit-cmd")}).save_to(explicit)

    merged = Config.load_merged(explicit)
    assert merged.servers["shared"].command == "project-cmd"
    assert merged.servers["user_only"].command == "u"
    assert merged.servers["project_only"].command == "explicit-cmd"
    assert set(merged.servers) == {"shared", "user_only", "project_only"}


def test_load_merged_without_files(linux_env):
    assert Config.load_merged().servers == {}