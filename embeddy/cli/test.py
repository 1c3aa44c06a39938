"""Tests for the command line interface."""

import json

import pytest

from embeddy.core.errors import DownloadFailedError, LoadTimeoutError

from .lib import build_parser, main

MINILM = "sentence-transformers/all-MiniLM-L6-v2"


@pytest.fixture
def factory_calls() -> list[dict]:
    """Arguments of every create_coordinator() call made by the CLI."""
    return []


@pytest.fixture
def cli_coordinator(coordinator, factory_calls, monkeypatch):
    """Route every CLI command to the fake coordinator."""

    def fake_create(data_dir=None, device=None):
        factory_calls.append({"data_dir": data_dir, "device": device})
        return coordinator

    monkeypatch.setattr("embeddy.cli.lib.create_coordinator", fake_create)
    return coordinator


class TestParser:
    """Tests for argument parsing."""

    @pytest.mark.unit
    def test_run_collects_repeated_text(self):
        args = build_parser().parse_args(["run", "minilm", "--text", "a", "-t", "b"])

        assert args.model == "minilm"
        assert args.text == ["a", "b"]
        assert args.device is None

    @pytest.mark.unit
    def test_serve_rejects_unknown_transport(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args(["serve", "--transport", "grpc"])

    @pytest.mark.unit
    def test_no_command_prints_help(self, capsys):
        assert main([]) == 1
        assert "usage" in capsys.readouterr().out.lower()


class TestCommands:
    """Tests for command handlers against the fake coordinator."""

    @pytest.mark.unit
    def test_pull(self, cli_coordinator, capsys):
        assert main(["pull", MINILM, "--alias", "minilm"]) == 0

        out = capsys.readouterr().out
        assert f"Pulled model: {MINILM}" in out
        assert "Alias: minilm" in out
        assert cli_coordinator.store.get("minilm").remote_id == MINILM

    @pytest.mark.unit
    def test_list_empty(self, cli_coordinator, capsys):
        assert main(["list"]) == 0
        assert "No models installed." in capsys.readouterr().out

    @pytest.mark.unit
    def test_list(self, cli_coordinator, capsys):
        cli_coordinator.pull(MINILM, alias="minilm")

        assert main(["list"]) == 0

        out = capsys.readouterr().out
        assert "minilm" in out
        assert f"Repository: {MINILM}" in out

    @pytest.mark.unit
    def test_run_prints_json(self, cli_coordinator, factory_calls, capsys):
        cli_coordinator.pull(MINILM, alias="minilm")

        assert main(["run", "minilm", "--text", "Hello, world!", "--device", "cpu"]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["model"] == "minilm"
        assert output["dimension"] == 384
        assert len(output["embeddings"]) == 1
        assert factory_calls[-1]["device"] == "cpu"

    @pytest.mark.unit
    def test_run_without_text(self, cli_coordinator, capsys):
        assert main(["run", "minilm"]) == 1
        assert "Error: No text provided" in capsys.readouterr().err

    @pytest.mark.unit
    def test_run_unknown_model(self, cli_coordinator, capsys):
        assert main(["run", "ghost", "--text", "x"]) == 1

        assert "Error: Model not found: ghost" in capsys.readouterr().err

    @pytest.mark.unit
    def test_run_load_timeout(self, cli_coordinator, monkeypatch, capsys):
        def timed_out(*args, **kwargs):
            raise LoadTimeoutError("Timed out after 0.1s waiting for 'minilm' to load")

        monkeypatch.setattr(cli_coordinator, "embed", timed_out)

        assert main(["run", "minilm", "--text", "x"]) == 1
        assert "Error: Timed out after 0.1s" in capsys.readouterr().err

    @pytest.mark.unit
    def test_pull_failure(self, cli_coordinator, fake_fetcher, capsys):
        fake_fetcher.fail_with = DownloadFailedError("Could not download: offline")

        assert main(["pull", MINILM]) == 1
        assert "Error: Could not download: offline" in capsys.readouterr().err
        assert cli_coordinator.list_registered() == []

    @pytest.mark.unit
    def test_rm(self, cli_coordinator, capsys):
        entry = cli_coordinator.pull(MINILM, alias="minilm")

        assert main(["rm", "minilm", "--purge"]) == 0

        assert "Removed model: minilm" in capsys.readouterr().out
        assert cli_coordinator.list_registered() == []
        assert not entry.local_path.exists()

    @pytest.mark.unit
    def test_rm_unknown(self, cli_coordinator, capsys):
        assert main(["rm", "ghost"]) == 1
        assert "Error: Model not found: ghost" in capsys.readouterr().err

    @pytest.mark.unit
    def test_data_dir_is_forwarded(self, cli_coordinator, factory_calls, tmp_path):
        main(["list", "--data-dir", str(tmp_path)])

        assert factory_calls[-1]["data_dir"] == tmp_path

    @pytest.mark.unit
    def test_serve_passes_config(self, cli_coordinator, monkeypatch, embeddy_env):
        captured = {}

        def fake_run_server(config, coordinator):
            captured["config"] = config
            captured["coordinator"] = coordinator

        monkeypatch.setattr("embeddy.server.run_server", fake_run_server)

        assert main(["serve", "--port", "9100", "--transport", "sse"]) == 0

        assert captured["config"].port == 9100
        assert captured["config"].transport.value == "sse"
        assert captured["coordinator"] is cli_coordinator

    @pytest.mark.unit
    def test_env(self, embeddy_env, capsys):
        assert main(["env"]) == 0

        out = capsys.readouterr().out
        assert "Environment Report" in out
        assert f"Data dir: {embeddy_env}" in out
        assert "Default device: cpu" in out

    @pytest.mark.unit
    def test_env_lists_configuration(self, embeddy_env, monkeypatch, capsys):
        monkeypatch.setenv("EMBEDDY_LOAD_TIMEOUT", "2.5")
        monkeypatch.setenv("HF_TOKEN", "hf_secret")

        assert main(["env"]) == 0

        out = capsys.readouterr().out
        assert "Configuration:" in out
        assert "EMBEDDY_DEVICE=cpu" in out
        assert "EMBEDDY_LOAD_TIMEOUT=2.5" in out
        assert "HF_TOKEN=(set)" in out
        assert "hf_secret" not in out
