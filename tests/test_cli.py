"""Tests for the command line interface."""

import logging

import pytest
from click.testing import CliRunner

from conftest import ScriptedProvider, call, text_response, tool_response
from traeagent import __version__
from traeagent.cli.main import cli
from traeagent.providers.base import ModelCallError, ProviderFactory
from traeagent.validation.config import Config


@pytest.fixture
def workspace(tmp_path, monkeypatch):
    """Isolated cwd and global config directory."""
    monkeypatch.chdir(tmp_path)
    monkeypatch.setattr(Config, "GLOBAL_CONFIG_DIR", tmp_path / "home")
    for var in Config.ENV_MAP:
        monkeypatch.delenv(var, raising=False)
    (tmp_path / "TRAE.md").write_text("Answer briefly.")
    return tmp_path


@pytest.fixture
def scripted(monkeypatch):
    """Install a scripted provider in place of the real endpoint."""

    def install(responses):
        provider = ScriptedProvider(responses)
        monkeypatch.setattr(ProviderFactory, "create", classmethod(lambda cls, config: provider))
        return provider

    return install


class TestCLI:
    def test_version(self):
        result = CliRunner().invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output

    def test_requires_instruction_file(self, workspace):
        result = CliRunner().invoke(cli, ["--no-mcp", "do", "things"])
        assert result.exit_code != 0
        assert "-f" in result.output

    def test_missing_instruction_file(self, workspace, scripted):
        scripted([])
        result = CliRunner().invoke(cli, ["-f", "missing.md", "--no-mcp"])
        assert result.exit_code == 1
        assert "Could not load instructions" in result.output

    def test_runs_task(self, workspace, scripted):
        (workspace / "notes.txt").write_text("hello")
        provider = scripted([
            tool_response(call("c1", "read_file", path="notes.txt")),
            text_response("The notes say hello."),
        ])

        result = CliRunner().invoke(cli, ["-f", "TRAE.md", "--no-mcp", "Summarize", "notes.txt"])

        assert result.exit_code == 0, result.output
        assert "The notes say hello." in result.output
        assert "2 model call(s), 1 tool call(s): read_file" in result.output

        first_user = provider.requests[0]["messages"][1]
        assert first_user.content == "Instructions from TRAE.md:\n\nAnswer briefly.\n\nTask: Summarize notes.txt"
        assert provider.requests[1]["messages"][-1].content == "hello"

    def test_max_iterations_flag(self, workspace, scripted):
        provider = scripted([
            tool_response(call("c1", "list_files")),
            text_response("forced answer"),
        ])

        result = CliRunner().invoke(cli, ["-f", "TRAE.md", "--no-mcp", "--max-iterations", "1"])

        assert result.exit_code == 0, result.output
        assert "forced answer" in result.output
        assert "iteration limit reached" in result.output
        assert provider.requests[1]["tools"] is None

    def test_model_error_exit_code(self, workspace, scripted):
        scripted([ModelCallError("endpoint unreachable")])

        result = CliRunner().invoke(cli, ["-f", "TRAE.md", "--no-mcp"])

        assert result.exit_code == 1
        assert "endpoint unreachable" in result.output

    def test_list_tools(self, workspace, scripted):
        scripted([])
        result = CliRunner().invoke(cli, ["--list-tools", "--no-mcp"])

        assert result.exit_code == 0, result.output
        for name in ("read_file", "write_file", "list_files", "execute_shell"):
            assert name in result.output

    def test_verbose_flag_sets_log_level(self, workspace, scripted):
        scripted([text_response("done")])

        result = CliRunner().invoke(cli, ["-f", "TRAE.md", "--no-mcp", "--verbose"])

        assert result.exit_code == 0, result.output
        assert logging.getLogger().level == logging.DEBUG
