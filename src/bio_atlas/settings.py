"""Configuration management for Bio Atlas."""

from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, TomlConfigSettingsSource

CONFIG_FILENAME = "bioatlas.toml"

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def find_config_toml(start: Path | None = None) -> Path | None:
    """Walk up from *start* (default: cwd) looking for ``bioatlas.toml``."""
    current = (start or Path.cwd()).resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            return None
        current = parent


class Neo4jSettings(BaseSettings):
    """Neo4j connection settings."""

    model_config = SettingsConfigDict(env_prefix="BIOATLAS_NEO4J__")

    uri: str = Field(default="bolt://localhost:7687", description="Bolt or neo4j:// URI of the graph store.")
    username: str = Field(default="neo4j", description="Neo4j username.")
    password: str = Field(default="", description="Neo4j password.")
    database: str | None = Field(default=None, description="Database name. None uses the server default.")
    max_connection_pool_size: int = Field(default=50, description="Max pooled Bolt connections.")
    connection_timeout_s: float = Field(default=30.0, description="Timeout in seconds for opening a connection.")
    query_timeout_s: float = Field(default=10.0, description="Timeout in seconds for a single read query.")


class EmbeddingSettings(BaseSettings):
    """Embedding settings: routes through litellm for any provider."""

    model_config = SettingsConfigDict(env_prefix="BIOATLAS_EMBEDDINGS__")

    model: str = Field(default="text-embedding-3-small", description="Embedding model name.")
    base_url: str = Field(default="", description="OpenAI-compatible endpoint URL. Empty uses the cloud provider.")
    api_key: str = Field(default="", description="API key. Empty defers to the provider's environment variable.")
    dimension: int = Field(default=1536, description="Embedding vector dimension; must match the vector indexes.")
    request_dimensions: bool = Field(
        default=True, description="Send ``dimensions`` with each request (text-embedding-3 models)."
    )
    batch_size: int = Field(default=32, description="Max texts per embedding API call.")
    timeout_s: float = Field(default=10.0, description="Timeout in seconds for embedding API calls.")


class SearchSettings(BaseSettings):
    """Retrieval pipeline settings."""

    model_config = SettingsConfigDict(env_prefix="BIOATLAS_SEARCH__")

    default_limit: int = Field(default=10, ge=1, description="Similarity hits returned when no limit is given.")
    max_limit: int = Field(default=100, ge=1, description="Largest accepted similarity hit limit.")
    expansion_path_limit: int | None = Field(
        default=None,
        ge=1,
        description="Optional cap on traversal paths fetched per seed. None bounds expansion by hop count only.",
    )
    vector_latency_warn_s: float = Field(
        default=1.0, description="Vector search latency above which a degradation warning is logged."
    )
    default_timeout_s: float | None = Field(
        default=None, description="Default end-to-end search budget in seconds. None disables the timeout."
    )
    default_token_budget: int = Field(default=4000, description="Default token budget for context composition.")
    tokenizer: str = Field(default="cl100k_base", description="Tiktoken encoding name for token counting.")
    entity_share: float = Field(
        default=0.7, description="Fraction of the token budget entities may use before relations are added."
    )


class ObservabilitySettings(BaseSettings):
    """OpenTelemetry observability settings (SDK requires the ``[otel]`` extra)."""

    model_config = SettingsConfigDict(env_prefix="BIOATLAS_OBSERVABILITY__")

    enabled: bool = Field(default=False, description="Enable OpenTelemetry tracing and metrics.")
    exporter: str = Field(default="otlp", description="Exporter type: 'otlp', 'console', or 'none'.")
    endpoint: str = Field(default="http://localhost:4317", description="OTLP collector endpoint.")
    service_name: str = Field(default="bio-atlas", description="OTel service.name resource attribute.")
    sample_rate: float = Field(default=1.0, description="Trace sample rate (1.0 = all, 0.1 = 10%).")


class BioAtlasSettings(BaseSettings):
    """Root configuration for Bio Atlas."""

    model_config = SettingsConfigDict(
        toml_file=CONFIG_FILENAME,
        env_prefix="BIOATLAS_",
        env_nested_delimiter="__",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        toml_path = find_config_toml()
        sources: list[PydanticBaseSettingsSource] = [init_settings, env_settings]
        if toml_path:
            sources.append(TomlConfigSettingsSource(settings_cls, toml_file=toml_path))
        sources.append(file_secret_settings)
        return tuple(sources)

    neo4j: Neo4jSettings = Field(default_factory=Neo4jSettings)
    embeddings: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    observability: ObservabilitySettings = Field(default_factory=ObservabilitySettings)
