"""
HTTP client for a local Ollama service.

Only two endpoints are used: `/api/generate` for keyword expansion and
`/api/embeddings` for query vectors. All failures surface as
ExpansionFailure so callers can fall back without inspecting httpx errors.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional

import httpx
from loguru import logger

from .config import SearchSettings
from .error_handling import ExpansionFailure


class OllamaClient:
    """Thin async wrapper around the Ollama HTTP API."""

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        # Injectable transport lets tests use httpx.MockTransport
        self._transport = transport

    def _client(self, timeout: Optional[float]) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=timeout)

    async def _post(self, url: str, body: Dict[str, Any], timeout: Optional[float]) -> Dict[str, Any]:
        async with self._client(timeout) as client:
            response = await client.post(url, json=body)

        if response.status_code // 100 != 2:
            raise ExpansionFailure(f"Ollama API error: {response.status_code} - {response.text[:200]}")

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise ExpansionFailure(f"Ollama returned a non-JSON body: {e}") from e
        if not isinstance(data, dict):
            raise ExpansionFailure("Ollama returned an unexpected body")
        return data

    async def _request(self, url: str, body: Dict[str, Any], timeout: Optional[float]) -> Dict[str, Any]:
        """POST with an overall deadline; None disables the deadline."""
        try:
            if timeout is None:
                return await self._post(url, body, None)
            return await asyncio.wait_for(self._post(url, body, timeout), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ExpansionFailure(
                f"Timeout after {timeout * 1000:.0f}ms - increase ollama_timeout_ms or use 0 for none"
            ) from e
        except httpx.HTTPError as e:
            raise ExpansionFailure(f"Ollama request failed: {type(e).__name__}: {e}") from e

    async def generate(
        self,
        endpoint: str,
        model: str,
        prompt: str,
        options: Dict[str, Any],
        timeout: Optional[float],
    ) -> str:
        """Run a non-streaming generation and return the `response` text."""
        body = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        logger.debug(f"Sending generation request to {endpoint} (model={model})")
        data = await self._request(f"{endpoint}/api/generate", body, timeout)
        text = data.get("response")
        if not isinstance(text, str):
            raise ExpansionFailure("Ollama response has no 'response' text")
        return text

    async def embed(
        self,
        endpoint: str,
        model: str,
        text: str,
        timeout: Optional[float],
    ) -> List[float]:
        data = await self._request(
            f"{endpoint}/api/embeddings",
            {"model": model, "prompt": text},
            timeout,
        )
        embedding = data.get("embedding")
        if not isinstance(embedding, list) or not embedding:
            raise ExpansionFailure("Ollama response has no embedding")
        return [float(v) for v in embedding]


class OllamaEmbedder:
    """Query embedder backed by Ollama; returns None on any failure."""

    def __init__(self, client: Optional[OllamaClient] = None):
        self.client = client or OllamaClient()

    async def embed(self, text: str, settings: SearchSettings) -> Optional[List[float]]:
        if not settings.embeddings_enabled or not text.strip():
            return None
        try:
            return await self.client.embed(
                settings.ollama_endpoint,
                settings.embedding_model,
                text,
                settings.ollama_timeout_seconds,
            )
        except (ExpansionFailure, TypeError, ValueError) as e:
            logger.warning(f"Query embedding failed, semantic scoring disabled for this search: {e}")
            return None
