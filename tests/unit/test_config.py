"""
Unit tests for server configuration and the command line.
"""

import logging

import pytest

from xend import __version__
from xend.__main__ import build_parser, main, parse_config
from xend.config import ServerConfig


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("XEND_HOST", "XEND_PORT", "XEND_DIR", "XEND_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestServerConfig:
    """Tests for ServerConfig."""

    def test_defaults(self):
        config = ServerConfig()

        assert config.host == "localhost"
        assert config.port == 8000
        assert config.directory == "."
        assert config.shutdown_timeout == 5.0
        assert config.compression_level == 6
        assert config.server_name == f"xend/{__version__}"
        config.validate()

    def test_from_env(self, clean_env, tmp_path):
        clean_env.setenv("XEND_HOST", "0.0.0.0")
        clean_env.setenv("XEND_PORT", "9000")
        clean_env.setenv("XEND_DIR", str(tmp_path))
        clean_env.setenv("XEND_LOG_LEVEL", "debug")

        config = ServerConfig.from_env()

        assert config.host == "0.0.0.0"
        assert config.port == 9000
        assert config.directory == str(tmp_path)
        assert config.log_level == "DEBUG"
        assert config.log_level_value == logging.DEBUG

    def test_from_env_overrides(self, clean_env):
        clean_env.setenv("XEND_PORT", "9000")

        assert ServerConfig.from_env(port=1234).port == 1234

    def test_from_env_bad_port(self, clean_env):
        clean_env.setenv("XEND_PORT", "eighty")

        with pytest.raises(ValueError, match="XEND_PORT"):
            ServerConfig.from_env()

    @pytest.mark.parametrize("changes", [
        {"port": -1},
        {"port": 70000},
        {"host": ""},
        {"directory": "/definitely/not/here"},
        {"min_workers": 0},
        {"min_workers": 8, "max_workers": 4},
        {"queue_size": 0},
        {"buffer_size": 100},
        {"timeout": 0},
        {"keep_alive_timeout": 0},
        {"shutdown_timeout": -1},
        {"compression_level": 0},
        {"compression_level": 10},
        {"log_level": "LOUD"},
    ])
    def test_validate_rejects(self, changes):
        with pytest.raises(ValueError):
            ServerConfig(**changes).validate()

    def test_port_zero_is_valid(self):
        ServerConfig(port=0).validate()


class TestCommandLine:
    """Tests for flag parsing."""

    def test_defaults(self, clean_env):
        config = parse_config([])

        assert (config.host, config.port, config.directory) == ("localhost", 8000, ".")

    def test_single_dash_flags(self, clean_env, tmp_path):
        config = parse_config([
            "-host", "0.0.0.0", "-port", "9000", "-dir", str(tmp_path),
        ])

        assert config.host == "0.0.0.0"
        assert config.port == 9000
        assert config.directory == str(tmp_path)

    def test_double_dash_flags(self, clean_env, tmp_path):
        config = parse_config(["--port", "9001", "--dir", str(tmp_path), "--log-level", "warning"])

        assert config.port == 9001
        assert config.log_level == "WARNING"

    def test_flags_override_env(self, clean_env):
        clean_env.setenv("XEND_PORT", "9000")

        assert parse_config([]).port == 9000
        assert parse_config(["-port", "9100"]).port == 9100

    @pytest.mark.parametrize("argv", [
        ["-port", "abc"],
        ["-port", "99999"],
        ["-dir", "/definitely/not/here"],
        ["-log-level", "LOUD"],
        ["-unknown"],
    ])
    def test_invalid_flags_exit_2(self, clean_env, argv):
        with pytest.raises(SystemExit) as exc_info:
            parse_config(argv)

        assert exc_info.value.code == 2

    def test_bad_env_port_exits_2(self, clean_env):
        clean_env.setenv("XEND_PORT", "eighty")

        with pytest.raises(SystemExit) as exc_info:
            parse_config([])

        assert exc_info.value.code == 2

    def test_version(self, clean_env, capsys):
        with pytest.raises(SystemExit) as exc_info:
            parse_config(["-version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_help_text(self):
        help_text = build_parser(ServerConfig()).format_help()

        assert "usage: xend [options]" in help_text
        assert "xend - A local file-server" in help_text
        assert "Example: xend -host 0.0.0.0 -port 9000 -dir ./public" in help_text
        assert "(default: 8000)" in help_text

    def test_bind_failure_exits_1(self, clean_env, tmp_path, monkeypatch):
        """Test that a server that can't start exits with status 1."""
        import xend.__main__ as cli

        def refuse(self):
            raise OSError(98, "Address already in use")

        monkeypatch.setattr(cli.HTTPServer, "run", refuse)
        monkeypatch.setattr(cli, "setup_logging", lambda level: None)

        with pytest.raises(SystemExit) as exc_info:
            main(["-port", "0", "-dir", str(tmp_path)])

        assert exc_info.value.code == 1
