"""Configuration schema using Pydantic.

Why this exists:
- Type-safe configuration with validation
- Environment variable support (KGRAG_ prefix, ``__`` for nesting)
- Multiple deployment profiles (local, server)

How to extend:
1. Add new fields to existing config classes
2. Create new config classes for new components
3. Document the new keys in the example config.toml
"""

from enum import Enum
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class EmbeddingProviderType(str, Enum):
    """Supported embedding providers."""

    OPENAI = "openai"
    MOCK = "mock"


class LLMProviderType(str, Enum):
    """Supported LLM providers."""

    OPENAI = "openai"
    MOCK = "mock"


class StoreType(str, Enum):
    """Supported knowledge stores."""

    CHROMA = "chroma"
    MEMORY = "memory"


class EmbeddingConfig(BaseModel):
    """Embedding provider configuration."""

    provider: EmbeddingProviderType = EmbeddingProviderType.OPENAI
    model_name: str = "text-embedding-3-small"
    api_key: Optional[str] = None
    dimension: int = Field(default=768, gt=0)
    batch_size: int = Field(default=32, gt=0)
    extra_params: dict[str, Any] = Field(default_factory=dict)


class LLMConfig(BaseModel):
    """LLM provider configuration."""

    provider: LLMProviderType = LLMProviderType.OPENAI
    model_name: str = "gpt-4o-mini"
    api_key: Optional[str] = None
    max_tokens: int = Field(default=2000, gt=0)
    temperature: float = Field(default=0.7, ge=0.0, le=2.0)
    extra_params: dict[str, Any] = Field(default_factory=dict)


class StoreConfig(BaseModel):
    """Knowledge store configuration.

    Chroma persists to ``persist_directory`` and is the default. The memory
    store lives only as long as the process and suits tests.
    """

    store_type: StoreType = StoreType.CHROMA
    collection_prefix: str = "kgrag"
    persist_directory: Optional[Path] = Field(default=Path.home() / ".kgrag" / "chroma")
    extra_params: dict[str, Any] = Field(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        """Expand ~ in paths."""
        if self.persist_directory:
            self.persist_directory = self.persist_directory.expanduser()


class ChunkingConfig(BaseModel):
    """Document chunking configuration.

    Sizes are estimated tokens (about four characters each):
    - target_tokens: 800 (upper bound for a regular chunk)
    - overlap_tokens: 100 (carried from the end of one chunk into the next)
    """

    target_tokens: int = Field(default=800, gt=0, description="Target chunk size in estimated tokens")
    overlap_tokens: int = Field(default=100, ge=0, description="Overlap between chunks in estimated tokens")

    @model_validator(mode="after")
    def overlap_below_target(self) -> "ChunkingConfig":
        if self.overlap_tokens >= self.target_tokens:
            raise ValueError("overlap_tokens must be smaller than target_tokens")
        return self


class RetrievalConfig(BaseModel):
    """Retriever defaults."""

    default_mode: str = "mix"
    top_k: int = Field(default=10, ge=1, le=50)
    match_threshold: float = Field(default=0.3, ge=0.0, le=1.0)


class ClientCacheConfig(BaseModel):
    """Per-credential provider client cache."""

    max_size: int = Field(default=100, gt=0)
    ttl_seconds: float = Field(default=300.0, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = LogLevel.INFO
    json_logs: bool = False
    log_dir: Optional[Path] = None
    enable_file: bool = False
    max_days: int = Field(default=30, gt=0)


class AppConfig(BaseSettings):
    """Main application configuration.

    Loads from:
    1. Config file (TOML)
    2. Environment variables (prefixed with KGRAG_)
    3. .env file
    """

    model_config = SettingsConfigDict(
        env_prefix="KGRAG_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    # Application settings
    app_name: str = "kgrag"
    default_workspace: str = "default"
    system_prompt: Optional[str] = None

    # Component configurations
    embedding: EmbeddingConfig = Field(default_factory=EmbeddingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    chunking: ChunkingConfig = Field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = Field(default_factory=RetrievalConfig)
    client_cache: ClientCacheConfig = Field(default_factory=ClientCacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
