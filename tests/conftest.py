"""Pytest fixtures for School Explorer tests."""

import os
from unittest.mock import AsyncMock, MagicMock

import pytest


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment(tmp_path_factory):
    """Set up test environment variables before any Settings are built.

    Model credentials and the webhook are blanked so no test reaches a real
    service, and the JSONL log points at a temporary directory.
    """
    os.environ["ANTHROPIC_API_KEY"] = ""
    os.environ["GEMINI_API_KEY"] = ""
    os.environ["EVALUATION_WEBHOOK_URL"] = ""
    os.environ["ZAPIER_WEBHOOK_URL"] = ""
    os.environ["EVALUATION_LOG_PATH"] = str(
        tmp_path_factory.mktemp("logs") / "evaluations.jsonl"
    )

    # Clear the settings cache to ensure tests start fresh
    from school_explorer.config import get_settings

    get_settings.cache_clear()

    yield

    # Cleanup after all tests
    get_settings.cache_clear()


@pytest.fixture
def judge_reply():
    """Build a mock Anthropic Messages response carrying the given text."""

    def _make(text: str, input_tokens: int = 120, output_tokens: int = 40) -> MagicMock:
        block = MagicMock()
        block.type = "text"
        block.text = text
        response = MagicMock()
        response.content = [block]
        response.usage = MagicMock(input_tokens=input_tokens, output_tokens=output_tokens)
        return response

    return _make


@pytest.fixture
def mock_anthropic_client(judge_reply):
    """Mock AsyncAnthropic client whose messages.create returns a clean judge reply."""
    client = MagicMock()
    client.messages.create = AsyncMock(
        return_value=judge_reply(
            '{"scores": {"factual_accuracy": 5, "context_inclusion": 5, '
            '"limitation_acknowledgment": 5, "responsible_framing": 5, '
            '"query_relevance": 5}, "weighted_score": 100, "flags": [], '
            '"summary": "Accurate and well framed."}'
        )
    )
    return client


@pytest.fixture
def mock_gemini_client():
    """Mock google-genai Client whose generate_content returns three suggestions."""
    response = MagicMock()
    response.text = (
        '{"suggestions": ['
        '{"text": "Compare these schools to citywide averages", "category": "compare"}, '
        '{"text": "What does the Impact Score measure?", "category": "explain"}, '
        '{"text": "Chart Impact Score against economic need", "category": "visualize"}'
        "]}"
    )
    response.usage_metadata = MagicMock(prompt_token_count=300, candidates_token_count=60)
    client = MagicMock()
    client.models.generate_content = MagicMock(return_value=response)
    return client
