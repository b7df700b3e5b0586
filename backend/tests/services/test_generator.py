"""
Tests for RAGGenerator with a mocked Anthropic client.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock, Mock

import httpx
import pytest
from anthropic import APIConnectionError

from mindsift.core.config import settings
from mindsift.core.errors import DownstreamUnavailable
from mindsift.schemas.chat import HistoryMessage, RankedChunk
from mindsift.schemas.transcript import StoredChunk
from mindsift.services.rag.generator import SYSTEM_PROMPT, RAGGenerator, format_chunk


def ranked(index, start, end, text, title="Index Funds Explained"):
    chunk = StoredChunk(
        id=index + 1,
        video_id=1,
        chunk_index=index,
        start_time=start,
        end_time=end,
        text=text,
    )
    return RankedChunk(chunk=chunk, similarity=0.9, score=1.2, video_title=title, youtube_id="dQw4w9WgXcQ")


def mock_client(text="Fees matter [01:05]."):
    client = Mock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(
        content=[SimpleNamespace(type="text", text=text)],
        usage=SimpleNamespace(input_tokens=120, output_tokens=12),
    ))
    return client


class TestContext:

    def test_format_chunk(self):
        line = format_chunk(2, ranked(0, 65.0, 3725.0, "Fees compound."))

        assert line == "[2] [01:05 - 01:02:05] (Index Funds Explained): Fees compound."

    def test_context_respects_token_budget(self):
        generator = RAGGenerator(client=mock_client(), max_context_tokens=60)
        generator.count_tokens = lambda text: 25
        chunks = [ranked(i, i * 10.0, i * 10.0 + 9.0, f"chunk {i}") for i in range(5)]

        context, used = generator.assemble_context(chunks)

        assert used == 2
        assert "chunk 0" in context and "chunk 1" in context
        assert "chunk 2" not in context

    def test_first_chunk_always_included(self):
        generator = RAGGenerator(client=mock_client(), max_context_tokens=1)
        generator.count_tokens = lambda text: 100

        _, used = generator.assemble_context([ranked(0, 0.0, 5.0, "long chunk")])

        assert used == 1


class TestGenerate:

    async def test_calls_messages_api_with_history(self):
        client = mock_client()
        generator = RAGGenerator(client=client, max_tokens=500, temperature=0.2)
        history = [
            HistoryMessage(role="user", content="What are index funds?"),
            HistoryMessage(role="assistant", content="Baskets of stocks [00:10]."),
        ]

        result = await generator.generate(
            "And fees?", [ranked(0, 60.0, 90.0, "Fees are low.")], history, "claude-test"
        )

        assert result.answer == "Fees matter [01:05]."
        assert result.model == "claude-test"
        assert result.input_tokens == 120
        assert result.output_tokens == 12
        assert result.chunks_in_context == 1

        kwargs = client.messages.create.await_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["max_tokens"] == 500
        assert kwargs["temperature"] == 0.2
        assert kwargs["system"] == SYSTEM_PROMPT
        messages = kwargs["messages"]
        assert messages[0] == {"role": "user", "content": "What are index funds?"}
        assert messages[1]["role"] == "assistant"
        assert messages[-1]["role"] == "user"
        assert "[1] [01:00 - 01:30] (Index Funds Explained): Fees are low." in messages[-1]["content"]
        assert "And fees?" in messages[-1]["content"]

    async def test_api_error_becomes_downstream_unavailable(self):
        client = Mock()
        request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
        client.messages.create = AsyncMock(side_effect=APIConnectionError(request=request))
        generator = RAGGenerator(client=client)

        with pytest.raises(DownstreamUnavailable):
            await generator.generate("q", [ranked(0, 0.0, 5.0, "t")], [], "claude-test")

    def test_missing_api_key(self, monkeypatch):
        monkeypatch.setattr(settings, "ANTHROPIC_API_KEY", None)

        with pytest.raises(DownstreamUnavailable):
            RAGGenerator()
