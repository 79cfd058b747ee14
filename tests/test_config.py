"""Tests for configuration resolution (CLI > environment > default)."""

import pytest

from gateway_supervisor.config import (
    DEFAULT_BIND,
    DEFAULT_PORT,
    ConfigError,
    SupervisorConfig,
    bind_to_host,
    parse_port,
    resolve_config,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("8080", 8080),
        ("0", 0),
        ("65535", 65535),
        (" 42 ", 42),
        ("65536", None),
        ("-1", None),
        ("abc", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_port(raw, expected):
    assert parse_port(raw) == expected


def test_defaults_without_flags_or_env(clean_env):
    config = resolve_config([], environ={})

    assert config.port == DEFAULT_PORT == 18789
    assert config.bind == DEFAULT_BIND == "lan"


def test_environment_overrides_defaults(clean_env):
    config = resolve_config([], environ={"GATEWAY_PORT": "9000", "GATEWAY_BIND": "loopback"})

    assert config.port == 9000
    assert config.bind == "loopback"


def test_cli_flags_override_environment(clean_env):
    config = resolve_config(
        ["--bind", "lan", "--port", "7000"],
        environ={"GATEWAY_PORT": "9000", "GATEWAY_BIND": "loopback"},
    )

    assert config.port == 7000
    assert config.bind == "lan"


def test_invalid_cli_port_falls_through_to_environment(clean_env):
    config = resolve_config(["--port", "70000"], environ={"GATEWAY_PORT": "9000"})
    assert config.port == 9000

    config = resolve_config(["--port", "nope"], environ={"GATEWAY_PORT": "bad"})
    assert config.port == DEFAULT_PORT


def test_missing_flag_value_and_unknown_args_are_ignored(clean_env):
    config = resolve_config(["--verbose", "extra", "--port"], environ={})

    assert config.port == DEFAULT_PORT
    assert config.bind == DEFAULT_BIND


def test_environment_is_read_by_default(clean_env):
    clean_env.setenv("GATEWAY_PORT", "1234")

    assert resolve_config([]).port == 1234


def test_service_argv_substitutes_bind_and_port(clean_env):
    config = SupervisorConfig(port=18789, bind="lan")

    assert config.service_argv() == [
        "node", "dist/index.js", "gateway",
        "--bind", "lan", "--port", "18789",
        "--allow-unconfigured",
    ]
    assert config.preflight_argv() == ["node", "dist/index.js", "doctor"]


def test_commands_and_tuning_from_environment(clean_env):
    clean_env.setenv("GATEWAY_PREFLIGHT_COMMAND", "./check 'with space'")
    clean_env.setenv("GATEWAY_SERVICE_COMMAND", "./serve --listen {bind}:{port}")
    clean_env.setenv("GATEWAY_SUPERVISOR_MAX_LOG_BYTES", "1024")
    clean_env.setenv("GATEWAY_SUPERVISOR_RESTART_DELAY", "0.5")
    clean_env.setenv("GATEWAY_FILEBROWSER_PATH", "/files")

    config = SupervisorConfig(port=80, bind="0.0.0.0")

    assert config.preflight_argv() == ["./check", "with space"]
    assert config.service_argv() == ["./serve", "--listen", "0.0.0.0:80"]
    assert config.max_log_bytes == 1024
    assert config.restart_delay == 0.5
    assert config.filebrowser_path == "/files"
    assert config.terminal_path == "/tty"


def test_unparseable_tuning_values_use_defaults(clean_env):
    clean_env.setenv("GATEWAY_SUPERVISOR_MAX_LOG_BYTES", "lots")
    clean_env.setenv("GATEWAY_SUPERVISOR_RESTART_DELAY", "soon")

    config = SupervisorConfig()

    assert config.max_log_bytes == 200 * 1024
    assert config.restart_delay == 0.1


@pytest.mark.parametrize(
    "token, host",
    [
        ("lan", "0.0.0.0"),
        ("auto", "0.0.0.0"),
        ("loopback", "127.0.0.1"),
        ("LOCALHOST", "127.0.0.1"),
        ("tailnet", "0.0.0.0"),
        ("custom", "0.0.0.0"),
        ("gateway.internal", "0.0.0.0"),
        ("10.1.2.3", "10.1.2.3"),
        ("::", "::"),
    ],
)
def test_bind_token_to_listen_host(token, host):
    assert bind_to_host(token) == host


def test_unterminated_quote_in_command_falls_back_to_default(clean_env, caplog):
    clean_env.setenv("GATEWAY_PREFLIGHT_COMMAND", 'doctor "unterminated')

    with caplog.at_level("WARNING", logger="gateway_supervisor.config"):
        config = resolve_config([])

    assert config.preflight_argv() == ["node", "dist/index.js", "doctor"]
    assert "GATEWAY_PREFLIGHT_COMMAND" in caplog.text


def test_blank_command_is_rejected(clean_env):
    clean_env.setenv("GATEWAY_PREFLIGHT_COMMAND", "   ")

    with pytest.raises(ConfigError):
        SupervisorConfig()


def test_config_is_immutable(clean_env):
    config = SupervisorConfig()

    with pytest.raises(AttributeError):
        config.port = 1


def test_cli_exits_with_usage_error_on_unusable_config(clean_env):
    from gateway_supervisor.cli import cli

    clean_env.setenv("GATEWAY_SERVICE_COMMAND", " ")

    assert cli(["--port", "1"]) == 2
