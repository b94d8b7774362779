"""Tests for main.py — command-line parsing and process exit codes."""

import json

import pytest
import structlog

import configuration
import main


@pytest.fixture(autouse=True)
def _isolate_from_environment(monkeypatch: pytest.MonkeyPatch, tmp_path):
    for field_name in configuration.HoneypotConfiguration.model_fields:
        monkeypatch.delenv(f"HONEYPOT_{field_name.upper()}", raising=False)
    monkeypatch.chdir(tmp_path)
    yield
    structlog.reset_defaults()


@pytest.fixture
def served_servers(monkeypatch: pytest.MonkeyPatch) -> list:
    """Replace ``main.serve`` so that no port is ever bound."""
    recorded_servers: list = []

    async def fake_serve(servers) -> None:
        recorded_servers.extend(servers)

    monkeypatch.setattr(main, "serve", fake_serve)
    return recorded_servers


class TestParseCommandLineArguments:

    def test_config_path_is_optional(self):
        assert main.parse_command_line_arguments([]).config is None

    def test_config_path_is_positional(self):
        assert main.parse_command_line_arguments(["honeypot.toml"]).config == "honeypot.toml"

    def test_version_exits_cleanly(self, capsys):
        with pytest.raises(SystemExit) as exit_information:
            main.parse_command_line_arguments(["--version"])

        assert exit_information.value.code == 0
        assert "honeypot 1.0.0" in capsys.readouterr().out


class TestMain:

    def test_missing_configuration_file_exits_with_10(self, tmp_path, served_servers, capsys):
        exit_code = main.main([str(tmp_path / "missing.toml")])

        assert exit_code == 10
        assert served_servers == []
        log_lines = [json.loads(line) for line in capsys.readouterr().out.strip().splitlines()]
        critical_lines = [log_line for log_line in log_lines if log_line["event"] == "configuration_error"]
        assert critical_lines[0]["level"] == "CRITICAL"
        assert critical_lines[0]["exit_code"] == 10

    def test_unreadable_generator_data_exits_with_30(self, tmp_path, served_servers):
        configuration_path = tmp_path / "honeypot.toml"
        configuration_path.write_text(
            '[generator]\ngenerator_type = "markov_chain"\ngenerator_data_path = "missing.txt"\n',
            encoding="utf-8",
        )

        assert main.main([str(configuration_path)]) == 30
        assert served_servers == []

    def test_small_chunk_size_exits_with_31(self, monkeypatch: pytest.MonkeyPatch, served_servers):
        monkeypatch.setenv("HONEYPOT_CHUNK_SIZE", "4")

        assert main.main([]) == 31

    def test_serves_honeypot_port_only_by_default(self, served_servers):
        assert main.main([]) == 0

        assert len(served_servers) == 1
        assert served_servers[0].config.port == 8080
        assert served_servers[0].config.timeout_graceful_shutdown == main.GRACEFUL_SHUTDOWN_TIMEOUT_SECONDS

    def test_health_port_adds_second_server(self, tmp_path, served_servers):
        configuration_path = tmp_path / "honeypot.toml"
        configuration_path.write_text(
            "application_port = 9000\nhealth_port_enabled = true\nhealth_port = 9001\n",
            encoding="utf-8",
        )

        assert main.main([str(configuration_path)]) == 0

        assert [server.config.port for server in served_servers] == [9000, 9001]

    def test_interrupt_after_shutdown_exits_cleanly(self, monkeypatch: pytest.MonkeyPatch):
        async def interrupted_serve(servers) -> None:
            raise KeyboardInterrupt

        monkeypatch.setattr(main, "serve", interrupted_serve)

        assert main.main([]) == 0
