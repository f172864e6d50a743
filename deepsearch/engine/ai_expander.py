"""
Prompt-based keyword expansion through a local LLM.

One generation call turns the query into related keywords
("war" -> war, battle, fight, combat, conflict, military), which the
normal keyword scorers then match. Successful expansions are cached per
normalized query. Every failure falls back to the original tokens.
"""

import json
import re
import time
from dataclasses import dataclass
from typing import Any, Callable, Iterable, List, Optional

from loguru import logger

from .cache import QueryCache, normalize_query
from .config import ExpansionConfig, SearchSettings
from .error_handling import CircuitBreaker, ExpansionFailure
from .ollama import OllamaClient
from .tokenizer import tokenize

EMBEDDING_ONLY_MODELS = ("embeddinggemma", "nomic-embed", "all-minilm", "mxbai-embed", "bge-")

PROMPT_TEMPLATE = """Expand these search keywords with 5 synonyms. Output ONLY a JSON array, nothing else.

Keywords: {keywords}

Example input: "war"
Example output: ["war","battle","fight","combat","conflict","military"]

Your JSON array:"""

_CODE_FENCE = re.compile(r"```(?:json|JSON)?\s*([\s\S]*?)\s*```")
_QUOTED_WORD = re.compile(r'"([a-zA-Z0-9]+)"')
_NON_ALNUM = re.compile(r"[^a-z0-9]")


@dataclass
class AIExpansion:
    """Outcome of one expansion attempt."""
    tokens: List[str]
    ai_expanded: bool
    from_cache: bool = False


def get_generation_model(configured: str, fallback: str = "llama3.2:1b") -> str:
    """Embedding-only models cannot generate text; swap in `fallback`."""
    if any(marker in configured.lower() for marker in EMBEDDING_ONLY_MODELS):
        logger.debug(f"Model '{configured}' is embedding-only, using {fallback} for expansion")
        return fallback
    return configured


def _clean_keyword(keyword: Any) -> Optional[str]:
    if not isinstance(keyword, str):
        return None
    cleaned = _NON_ALNUM.sub("", keyword.strip().lower())
    return cleaned if len(cleaned) >= 2 else None


def _merge(original: Iterable[str], extra: Iterable[str]) -> List[str]:
    merged = {t.lower(): None for t in original}
    for keyword in extra:
        if keyword:
            merged.setdefault(keyword, None)
    return list(merged)


def parse_keyword_response(text: str, original_tokens: List[str]) -> List[str]:
    """
    Extract keywords from a model response.

    Handles, in order: markdown code fences, a JSON array anywhere in the
    text, a `{"original": [...], "expanded": [...]}` object, and finally
    any quoted alphanumeric words. Original tokens always lead the result.
    """
    cleaned = (text or "").strip()

    fenced = _CODE_FENCE.search(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()

    start, end = cleaned.find("["), cleaned.rfind("]")
    if start != -1 and end > start:
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, list):
            result = _merge(original_tokens, (_clean_keyword(k) for k in parsed))
            logger.debug(f"Parsed array response: {len(result) - len(original_tokens)} new keywords")
            return result

    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(cleaned[start:end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            originals = parsed.get("original") if isinstance(parsed.get("original"), list) else []
            expanded = parsed.get("expanded") if isinstance(parsed.get("expanded"), list) else []
            extra = [k.strip().lower() for k in originals if isinstance(k, str) and k.strip()]
            extra += [_clean_keyword(k) for k in expanded]
            result = _merge(original_tokens, extra)
            logger.debug(f"Parsed object response: {len(result) - len(original_tokens)} new keywords")
            return result

    logger.debug(f"Using regex fallback extraction on: {text[:200]!r}")
    quoted = (m.lower() for m in _QUOTED_WORD.findall(text or ""))
    return _merge(original_tokens, (k for k in quoted if len(k) >= 2))


class AIKeywordExpander:
    """Expands queries through the local LLM, with caching and a circuit breaker."""

    def __init__(self,
                 config: Optional[ExpansionConfig] = None,
                 client: Optional[OllamaClient] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config or ExpansionConfig()
        self.client = client or OllamaClient()
        self.cache: QueryCache[List[str]] = QueryCache(
            max_size=self.config.cache_max_entries,
            ttl_seconds=self.config.cache_ttl_seconds,
            name="expansion",
            clock=clock,
        )
        self.breaker = CircuitBreaker(
            "ollama",
            failure_threshold=self.config.circuit_failure_threshold,
            recovery_timeout=self.config.circuit_recovery_seconds,
            clock=clock,
        )

    def build_prompt(self, tokens: List[str]) -> str:
        return PROMPT_TEMPLATE.format(keywords=", ".join(tokens))

    async def expand(self, query: str, settings: SearchSettings) -> AIExpansion:
        """
        Expand `query` into original + related keywords.

        Returns the original tokens unchanged when the feature is disabled
        or when any step fails. Never raises.
        """
        normalized = normalize_query(query)
        original = tokenize(normalized)
        if not original:
            return AIExpansion(tokens=[], ai_expanded=False)

        if not settings.ollama_enabled:
            logger.trace("AI expansion disabled, returning original tokens")
            return AIExpansion(tokens=original, ai_expanded=False)

        cached = self.cache.get(normalized)
        if cached is not None:
            logger.debug(f"AI expansion cache hit for: '{normalized}'")
            return AIExpansion(tokens=list(cached), ai_expanded=True, from_cache=True)

        try:
            keywords = await self.breaker.call(self._call_model, original, settings)
        except ExpansionFailure as e:
            logger.warning(f"AI expansion failed, using original query: {e}")
            return AIExpansion(tokens=original, ai_expanded=False)
        except Exception as e:
            logger.error(f"Unexpected AI expansion error, using original query: {e}")
            return AIExpansion(tokens=original, ai_expanded=False)

        self.cache.set(normalized, keywords)
        logger.info(f"Expanded '{normalized}' -> {len(keywords)} keywords: {keywords[:10]}")
        return AIExpansion(tokens=list(keywords), ai_expanded=True)

    async def _call_model(self, original: List[str], settings: SearchSettings) -> List[str]:
        model = get_generation_model(settings.ollama_model, self.config.fallback_model)
        options = {
            "temperature": self.config.temperature,
            "num_predict": self.config.num_predict,
        }
        if self.config.stop:
            options["stop"] = list(self.config.stop)

        start = time.perf_counter()
        text = await self.client.generate(
            settings.ollama_endpoint,
            model,
            self.build_prompt(original),
            options,
            settings.ollama_timeout_seconds,
        )
        logger.debug(f"Expansion response in {(time.perf_counter() - start) * 1000:.0f}ms: {text[:200]!r}")
        return parse_keyword_response(text, original)

    def clear_cache(self) -> None:
        self.cache.clear()
