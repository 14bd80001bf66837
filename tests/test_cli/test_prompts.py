"""Tests for interactive prompts."""

from unittest.mock import patch

import pytest

from devspawn.cli import prompts
from devspawn.errors import ConfigError
from devspawn.models.container import ContainerSpec


@pytest.fixture
def spec():
    return ContainerSpec(name="claude-code-dev", cores=4, memory_mb=8192, disk_gb=20, dev_volume_gb=50)


class TestContainerName:
    """Test the container name question."""

    @patch("devspawn.cli.prompts.Prompt.ask", side_effect=["my box!", "-box", "dev-box"])
    def test_invalid_name_is_asked_again(self, mock_ask):
        assert prompts.ask_container_name("claude-code-dev") == "dev-box"
        assert mock_ask.call_count == 3

    @patch("devspawn.cli.prompts.Prompt.ask", return_value="claude-code-dev")
    def test_default_is_accepted(self, mock_ask):
        assert prompts.ask_container_name("claude-code-dev") == "claude-code-dev"


class TestContainerSpec:
    """Test the full container questionnaire."""

    @patch("devspawn.cli.prompts.Confirm.ask", return_value=True)
    @patch("devspawn.cli.prompts.IntPrompt.ask", side_effect=[2, 4096, 30, 0])
    @patch("devspawn.cli.prompts.Prompt.ask", side_effect=["bad_name", "dev-box"])
    def test_answers_build_spec(self, mock_prompt, mock_int, mock_confirm, spec):
        result = prompts.ask_container_spec(spec)
        assert result.name == "dev-box"
        assert (result.cores, result.memory_mb, result.disk_gb, result.dev_volume_gb) == (2, 4096, 30, 0)

    @patch("devspawn.cli.prompts.Confirm.ask", return_value=True)
    @patch("devspawn.cli.prompts.IntPrompt.ask", side_effect=[0, 4096, 30, 0])
    @patch("devspawn.cli.prompts.Prompt.ask", return_value="dev-box")
    def test_out_of_range_value_is_config_error(self, mock_prompt, mock_int, mock_confirm, spec):
        with pytest.raises(ConfigError, match="Invalid container settings"):
            prompts.ask_container_spec(spec)
