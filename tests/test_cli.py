"""
Unit tests for CLI interface and command handling.

Tests the omi_mcp.cli module with various command-line arguments,
options, and error conditions.
"""

import os
import json
import tempfile
import pytest
from unittest.mock import patch, AsyncMock, MagicMock
from click.testing import CliRunner

from omi_mcp import __version__
from omi_mcp.cli import cli, parse_arguments, CLIError
from omi_mcp.client import OmiClient
from omi_mcp.tools import ToolDispatcher
from conftest import make_response


@pytest.fixture
def isolated_env():
    """Environment with a token, no user config file and no .env loading."""
    with tempfile.TemporaryDirectory() as temp_dir:
        with patch('omi_mcp.config.ConfigManager.USER_CONFIG_DIR', temp_dir), \
             patch('omi_mcp.config.load_dotenv'), \
             patch.dict(os.environ, {'OMI_API_TOKEN': 'test-token'}, clear=True):
            yield temp_dir


@pytest.fixture
def fake_client():
    """Real OmiClient with a faked HTTP layer, returned by create_client."""
    omi_client = OmiClient(api_token="test-token")
    omi_client.session.request = MagicMock(return_value=make_response(200, []))
    with patch('omi_mcp.cli.create_client', return_value=omi_client):
        yield omi_client


class TestCLIBasics:
    """Test basic CLI functionality and argument parsing."""

    def setup_method(self):
        """Set up test environment before each test."""
        self.runner = CliRunner()

    def test_cli_help(self):
        result = self.runner.invoke(cli, ['--help'])

        assert result.exit_code == 0
        assert 'Omi MCP' in result.output
        assert '--config' in result.output
        assert '--verbose' in result.output

    def test_cli_version(self):
        result = self.runner.invoke(cli, ['--version'])

        assert result.exit_code == 0
        assert __version__ in result.output

    def test_tools_lists_every_tool(self):
        result = self.runner.invoke(cli, ['tools'])

        assert result.exit_code == 0
        assert 'get-memories' in result.output
        assert 'create-action-item' in result.output
        assert '(requires: title)' in result.output
        assert 'get-rate-limit-status' in result.output


class TestCallCommand:
    """Test invoking a single tool from the command line."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_call_prints_json_result(self, isolated_env, fake_client):
        fake_client.session.request.return_value = make_response(
            201, {'id': 'a1', 'title': 'Pay rent', 'status': 'pending'})

        result = self.runner.invoke(cli, ['call', 'create-action-item', '-a', '{"title": "Pay rent"}'])

        assert result.exit_code == 0
        assert json.loads(result.output)['id'] == 'a1'

    def test_call_without_arguments(self, isolated_env, fake_client):
        result = self.runner.invoke(cli, ['call', 'get-memories'])

        assert result.exit_code == 0
        assert json.loads(result.output) == {'memories': [], 'total': 0}

    def test_call_tool_error_exits_with_status_1(self, isolated_env, fake_client):
        fake_client.session.request.return_value = make_response(401)

        result = self.runner.invoke(cli, ['call', 'get-memories'])

        assert result.exit_code == 1
        assert "Error: Unauthorized: Invalid API token" in result.output

    def test_call_missing_argument(self, isolated_env, fake_client):
        result = self.runner.invoke(cli, ['call', 'create-memory'])

        assert result.exit_code == 1
        assert "Error: Missing required argument: content" in result.output
        fake_client.session.request.assert_not_called()

    def test_call_unknown_tool(self, isolated_env, fake_client):
        result = self.runner.invoke(cli, ['call', 'make-coffee'])

        assert result.exit_code == 1
        assert "Unknown tool: make-coffee" in result.output

    def test_call_invalid_json_arguments(self, isolated_env, fake_client):
        result = self.runner.invoke(cli, ['call', 'get-memories', '-a', '{not json'])

        assert result.exit_code == 1
        assert "--arguments must be valid JSON" in result.output

    def test_call_shows_rate_limit(self, isolated_env, fake_client):
        fake_client.session.request.return_value = make_response(
            200, [], {'x-ratelimit-remaining': '7', 'x-ratelimit-reset': '1700000000'})

        result = self.runner.invoke(cli, ['call', 'get-memories', '--show-rate-limit'])

        assert result.exit_code == 0
        assert "Rate limit: 7 remaining, resets at 1700000000" in result.output

    def test_call_without_token_fails(self, isolated_env):
        with patch.dict(os.environ, {}, clear=True):
            result = self.runner.invoke(cli, ['call', 'get-memories'])

        assert result.exit_code == 1
        assert "Configuration validation failed" in result.output
        assert "OMI_API_TOKEN" in result.output

    def test_call_with_missing_config_file(self, isolated_env):
        result = self.runner.invoke(cli, ['--config', '/nonexistent/config.yaml', 'call', 'get-memories'])

        assert result.exit_code == 1
        assert "Configuration file not found" in result.output


class TestServeCommand:
    """Test starting the stdio server."""

    def setup_method(self):
        self.runner = CliRunner()

    def test_no_subcommand_starts_server(self, isolated_env, fake_client):
        with patch('omi_mcp.server.run_stdio_server', new_callable=AsyncMock) as mock_run:
            result = self.runner.invoke(cli, [])

        assert result.exit_code == 0
        mock_run.assert_awaited_once()
        dispatcher, name = mock_run.call_args[0]
        assert isinstance(dispatcher, ToolDispatcher)
        assert dispatcher.client is fake_client
        assert name == 'omi-me-integration'

    def test_serve_without_token_fails(self, isolated_env):
        with patch.dict(os.environ, {}, clear=True), \
             patch('omi_mcp.server.run_stdio_server', new_callable=AsyncMock) as mock_run:
            result = self.runner.invoke(cli, ['serve'])

        assert result.exit_code == 1
        mock_run.assert_not_called()


class TestParseArguments:
    """Test --arguments parsing."""

    def test_empty(self):
        assert parse_arguments(None) == {}
        assert parse_arguments('') == {}

    def test_object(self):
        assert parse_arguments('{"limit": 5}') == {'limit': 5}

    def test_non_object_rejected(self):
        with pytest.raises(CLIError):
            parse_arguments('[1, 2]')
