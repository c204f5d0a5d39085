from click.testing import CliRunner

import fabricx.cli as cli_module
from fabricx.errors import ExternalToolUnavailable


class FakeService:
    instances = []

    def __init__(self, registry, settings, logger, console):
        self.registry = registry
        self.settings = settings
        self.prepared = []
        FakeService.instances.append(self)

    def prepare(self, token=None):
        self.prepared.append(token)


def _install_fakes(monkeypatch, exit_code=0):
    FakeService.instances = []
    served = {}

    def fake_serve(service, host, port, max_workers, console=None):
        served.update({"service": service, "host": host, "port": port, "max_workers": max_workers})
        return exit_code

    monkeypatch.setattr(cli_module, "FabricXService", FakeService)
    monkeypatch.setattr(cli_module, "serve_grpc", fake_serve)
    return served


def test_serve_uses_config_and_allows_cli_override(tmp_path, monkeypatch):
    config_file = tmp_path / ".fabricx.yml"
    config_file.write_text(
        "port: 6000\n" "max_workers: 4\n" "readiness_timeout: 30\n" "compose_command: docker-compose\n",
        encoding="utf-8",
    )
    served = _install_fakes(monkeypatch)

    runner = CliRunner()
    result = runner.invoke(
        cli_module.main,
        ["serve", "--config", str(config_file), "--port", "7000", "--work-dir", str(tmp_path / "work")],
    )

    assert result.exit_code == 0, result.output
    assert served["port"] == 7000
    assert served["max_workers"] == 4
    settings = FakeService.instances[0].settings
    assert settings.readiness_timeout == 30.0
    assert settings.compose_command == ["docker-compose"]
    assert settings.work_dir == str(tmp_path / "work")
    assert FakeService.instances[0].prepared == [None]


def test_serve_uses_default_config_file_when_present(tmp_path, monkeypatch):
    (tmp_path / ".fabricx.yml").write_text("host: 127.0.0.1\nport: 50999\n", encoding="utf-8")
    served = _install_fakes(monkeypatch)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["serve"])

    assert result.exit_code == 0, result.output
    assert served["host"] == "127.0.0.1"
    assert served["port"] == 50999


def test_serve_propagates_server_exit_code(monkeypatch, tmp_path):
    _install_fakes(monkeypatch, exit_code=1)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["serve"])

    assert result.exit_code == 1


def test_serve_rejects_unknown_config_keys(tmp_path, monkeypatch):
    config_file = tmp_path / "bad.yml"
    config_file.write_text("source: dump.zip\n", encoding="utf-8")
    _install_fakes(monkeypatch)

    result = CliRunner().invoke(cli_module.main, ["serve", "--config", str(config_file)])

    assert result.exit_code != 0
    assert "Unknown configuration keys: source" in result.output
    assert FakeService.instances == []


def test_check_reports_environment_ok(monkeypatch, tmp_path):
    _install_fakes(monkeypatch)
    monkeypatch.chdir(tmp_path)

    result = CliRunner().invoke(cli_module.main, ["check", "--compose-command", "docker compose"])

    assert result.exit_code == 0, result.output
    service = FakeService.instances[0]
    assert service.settings.compose_command == ["docker", "compose"]
    assert service.prepared[0].deadline is not None


def test_check_turns_environment_errors_into_click_errors(monkeypatch, tmp_path):
    _install_fakes(monkeypatch)
    monkeypatch.chdir(tmp_path)

    def broken_prepare(self, token=None):
        raise ExternalToolUnavailable("Docker is not available: daemon down", operation="check_environment")

    monkeypatch.setattr(FakeService, "prepare", broken_prepare)

    result = CliRunner().invoke(cli_module.main, ["check"])

    assert result.exit_code == 1
    assert "daemon down" in result.output


def test_build_settings_prefers_cli_over_config():
    settings = cli_module.build_settings({"port": 1234, "pull_images": True}, port=4321, pull_images=None)

    assert settings.port == 4321
    assert settings.pull_images is True
    assert settings.compose_command is None
