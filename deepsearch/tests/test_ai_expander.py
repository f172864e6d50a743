"""Tests for LLM keyword expansion against a mocked Ollama service."""

import json

import httpx
import pytest

from deepsearch.engine.ai_expander import (
    AIKeywordExpander,
    get_generation_model,
    parse_keyword_response,
)
from deepsearch.engine.config import ExpansionConfig, SearchSettings
from deepsearch.engine.ollama import OllamaClient, OllamaEmbedder

ENDPOINT = "http://ollama.test"


class FakeOllama:
    """Records requests and replays a canned reply."""

    def __init__(self, reply=None, status=200, error=None):
        self.reply = reply
        self.status = status
        self.error = error
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        return httpx.Response(self.status, json=self.reply)

    @property
    def bodies(self):
        return [json.loads(r.content) for r in self.requests]


def make_expander(fake, clock=None, **config):
    client = OllamaClient(transport=httpx.MockTransport(fake))
    kwargs = {"clock": clock} if clock is not None else {}
    return AIKeywordExpander(ExpansionConfig(**config), client, **kwargs)


@pytest.fixture
def enabled():
    return SearchSettings(ollama_enabled=True, ollama_endpoint=ENDPOINT)


class TestParseKeywordResponse:
    """Test tolerant parsing of model output."""

    def test_plain_array(self):
        assert parse_keyword_response('["war","battle","fight"]', ["war"]) == ["war", "battle", "fight"]

    def test_prose_prefix(self):
        result = parse_keyword_response('sure! ["war","battle"]', ["war"])
        assert set(result) == {"war", "battle"}

    def test_code_fence(self):
        text = 'Here you go:\n```json\n["Combat", "conflict!"]\n```'
        assert parse_keyword_response(text, ["war"]) == ["war", "combat", "conflict"]

    def test_object_format(self):
        text = '{"original": ["war"], "expanded": ["battle", "military"]}'
        assert parse_keyword_response(text, ["war"]) == ["war", "battle", "military"]

    def test_quoted_word_fallback(self):
        text = 'Try "combat" or "conflict", maybe "x".'
        assert parse_keyword_response(text, ["war"]) == ["war", "combat", "conflict"]

    def test_garbage_yields_originals(self):
        assert parse_keyword_response("I cannot help with that", ["war"]) == ["war"]

    def test_short_and_non_string_keywords_dropped(self):
        assert parse_keyword_response('["a", 42, null, "ok"]', ["q"]) == ["q", "ok"]


class TestGenerationModel:
    """Test embedding-only model substitution."""

    @pytest.mark.parametrize("model", ["nomic-embed-text", "embeddinggemma:300m", "bge-m3", "all-minilm"])
    def test_embedding_models_swapped(self, model):
        assert get_generation_model(model) == "llama3.2:1b"

    def test_generation_model_kept(self):
        assert get_generation_model("qwen2.5:3b") == "qwen2.5:3b"


class TestAIKeywordExpander:
    """Test expansion, fallback and caching."""

    @pytest.mark.asyncio
    async def test_disabled_returns_original_tokens(self):
        fake = FakeOllama(reply={"response": '["battle"]'})
        expander = make_expander(fake)

        result = await expander.expand("War History", SearchSettings(ollama_enabled=False))

        assert result.tokens == ["war", "history"]
        assert not result.ai_expanded
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_successful_expansion(self, enabled):
        fake = FakeOllama(reply={"response": 'sure! ["war","battle","combat"]'})
        expander = make_expander(fake)

        result = await expander.expand("war", enabled)

        assert set(result.tokens) == {"war", "battle", "combat"}
        assert result.ai_expanded

    @pytest.mark.asyncio
    async def test_request_shape(self, enabled):
        fake = FakeOllama(reply={"response": "[]"})
        expander = make_expander(fake, temperature=0.1, num_predict=80)

        await expander.expand("war", enabled.model_copy(update={"ollama_model": "nomic-embed-text"}))

        request = fake.requests[0]
        body = fake.bodies[0]
        assert str(request.url) == f"{ENDPOINT}/api/generate"
        assert body["model"] == "llama3.2:1b"
        assert body["stream"] is False
        assert body["options"]["temperature"] == 0.1
        assert body["options"]["num_predict"] == 80
        assert "war" in body["prompt"]

    @pytest.mark.asyncio
    async def test_http_error_falls_back(self, enabled):
        expander = make_expander(FakeOllama(reply={"error": "model not found"}, status=404))
        result = await expander.expand("war", enabled)
        assert result.tokens == ["war"]
        assert not result.ai_expanded

    @pytest.mark.asyncio
    async def test_network_error_falls_back(self, enabled):
        expander = make_expander(FakeOllama(error=httpx.ConnectError("refused")))
        result = await expander.expand("war", enabled)
        assert result.tokens == ["war"]
        assert not result.ai_expanded

    @pytest.mark.asyncio
    async def test_timeout_falls_back(self, enabled):
        expander = make_expander(FakeOllama(error=httpx.ReadTimeout("slow")))
        result = await expander.expand("war", enabled)
        assert result.tokens == ["war"]

    @pytest.mark.asyncio
    async def test_missing_response_field_falls_back(self, enabled):
        expander = make_expander(FakeOllama(reply={"done": True}))
        result = await expander.expand("war", enabled)
        assert result.tokens == ["war"]
        assert not result.ai_expanded

    @pytest.mark.asyncio
    async def test_successful_expansion_cached(self, enabled, clock):
        fake = FakeOllama(reply={"response": '["battle"]'})
        expander = make_expander(fake, clock=clock)

        first = await expander.expand("war", enabled)
        second = await expander.expand(" WAR ", enabled)

        assert len(fake.requests) == 1
        assert second.from_cache
        assert second.tokens == first.tokens

        clock.advance(301)
        await expander.expand("war", enabled)
        assert len(fake.requests) == 2

    @pytest.mark.asyncio
    async def test_failures_not_cached(self, enabled):
        fake = FakeOllama(status=500, reply={})
        expander = make_expander(fake)

        await expander.expand("war", enabled)
        await expander.expand("war", enabled)

        assert len(fake.requests) == 2

    @pytest.mark.asyncio
    async def test_circuit_opens_after_repeated_failures(self, enabled, clock):
        fake = FakeOllama(error=httpx.ConnectError("refused"))
        expander = make_expander(fake, clock=clock, circuit_failure_threshold=2)

        for query in ("a1", "b2", "c3"):
            result = await expander.expand(query, enabled)
            assert not result.ai_expanded

        assert len(fake.requests) == 2
        assert expander.breaker.is_open


class TestOllamaEmbedder:
    """Test query embedding requests."""

    @pytest.mark.asyncio
    async def test_returns_vector(self):
        fake = FakeOllama(reply={"embedding": [0.1, 0.2, 0.3]})
        embedder = OllamaEmbedder(OllamaClient(transport=httpx.MockTransport(fake)))
        settings = SearchSettings(embeddings_enabled=True, ollama_endpoint=ENDPOINT)

        vector = await embedder.embed("war", settings)

        assert vector == [0.1, 0.2, 0.3]
        assert str(fake.requests[0].url) == f"{ENDPOINT}/api/embeddings"
        assert fake.bodies[0] == {"model": "nomic-embed-text", "prompt": "war"}

    @pytest.mark.asyncio
    async def test_disabled_returns_none(self):
        fake = FakeOllama(reply={"embedding": [0.1]})
        embedder = OllamaEmbedder(OllamaClient(transport=httpx.MockTransport(fake)))
        assert await embedder.embed("war", SearchSettings()) is None
        assert fake.requests == []

    @pytest.mark.asyncio
    async def test_failure_returns_none(self):
        fake = FakeOllama(status=500, reply={})
        embedder = OllamaEmbedder(OllamaClient(transport=httpx.MockTransport(fake)))
        settings = SearchSettings(embeddings_enabled=True, ollama_endpoint=ENDPOINT)
        assert await embedder.embed("war", settings) is None
