"""Configuration management for deepsearch."""

from pathlib import Path
from typing import Dict, List, Optional

import yaml
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, field_validator


class SearchSettings(BaseModel):
    """
    User-facing settings, read as an immutable snapshot per search.
    A timeout of zero or less means no timeout.
    """
    model_config = ConfigDict(frozen=True)

    ollama_enabled: bool = False
    ollama_endpoint: str = "http://localhost:11434"
    ollama_model: str = "llama3.2:1b"
    ollama_timeout_ms: int = 30000
    embeddings_enabled: bool = False
    embedding_model: str = "nomic-embed-text"
    synonym_expansion: bool = False
    strict_matching: bool = True
    diverse_results: bool = False

    @field_validator("ollama_endpoint")
    @classmethod
    def validate_endpoint(cls, v: str) -> str:
        v = v.strip().rstrip("/")
        if not v:
            raise ValueError("ollama_endpoint must not be empty")
        return v

    @field_validator("ollama_model", "embedding_model")
    @classmethod
    def validate_model(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("model name must not be empty")
        return v.strip()

    @property
    def ollama_timeout_seconds(self) -> Optional[float]:
        if self.ollama_timeout_ms <= 0:
            return None
        return self.ollama_timeout_ms / 1000.0


class CacheConfig(BaseModel):
    max_size: int = Field(default=100, ge=1)
    ttl_seconds: float = Field(default=300, gt=0)
    sweep_interval_seconds: float = Field(default=60, gt=0)


class ExpansionConfig(BaseModel):
    cache_max_entries: int = Field(default=50, ge=1)
    cache_ttl_seconds: float = Field(default=300, gt=0)
    temperature: float = 0.2
    num_predict: int = 150
    stop: List[str] = Field(default_factory=lambda: ["\n\n", "```"])
    fallback_model: str = "llama3.2:1b"
    circuit_failure_threshold: int = Field(default=3, ge=1)
    circuit_recovery_seconds: float = Field(default=30, ge=0)

    @field_validator("temperature")
    @classmethod
    def validate_temperature(cls, v: float) -> float:
        if not 0 <= v <= 2:
            raise ValueError("temperature must be between 0 and 2")
        return v


class SearchConfig(BaseModel):
    max_results: int = Field(default=50, ge=1)
    history_fallback_limit: int = Field(default=200, ge=1)


class EngineConfig(BaseModel):
    """Main configuration for the search engine."""

    cache: CacheConfig = Field(default_factory=CacheConfig)
    expansion: ExpansionConfig = Field(default_factory=ExpansionConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)
    settings: SearchSettings = Field(default_factory=SearchSettings)
    custom_synonyms: Dict[str, List[str]] = Field(default_factory=dict)

    @classmethod
    def default_paths(cls) -> List[Path]:
        return [
            Path("deepsearch.yaml"),
            Path.home() / ".config" / "deepsearch" / "config.yaml",
        ]

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "EngineConfig":
        """
        Load configuration from YAML.

        An explicit path must exist. Without one, the default locations
        are tried and built-in defaults are used when none exists.
        """
        if config_path is None:
            for candidate in cls.default_paths():
                if candidate.exists():
                    config_path = candidate
                    break
            else:
                logger.debug("No config file found, using defaults")
                return cls()

        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")

        logger.info(f"Loading config from: {config_path}")
        with open(config_path, "r") as f:
            data = yaml.safe_load(f) or {}

        return cls(**data)

    def save(self, config_path: Path) -> None:
        """Save configuration to YAML file."""
        config_path.parent.mkdir(parents=True, exist_ok=True)
        with open(config_path, "w") as f:
            yaml.safe_dump(self.model_dump(), f, default_flow_style=False)
