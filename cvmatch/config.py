"""
Runtime configuration, read from the environment (and .env when present)
"""
import os
from typing import Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from cvmatch.utils.exceptions import ConfigurationError


class DatabaseSettings(BaseModel):
    """MongoDB connection settings"""
    uri: str = Field(default="mongodb://localhost:27017", description="MongoDB connection string")
    db_name: str = Field(default="cvmatch_db", description="Database name")


class LLMSettings(BaseModel):
    """Language model configuration (extraction, scoring and chat)"""
    model_name: str = Field(default="llama3.1:8b", description="Text model used for extraction, scoring and chat")
    vision_model_name: str = Field(default="llava:7b", description="Multimodal model used for page images")
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    temperature: float = Field(default=0.1, ge=0.0, le=2.0, description="Generation temperature")
    timeout: float = Field(default=120, gt=0, le=600, description="Request timeout in seconds")

    @field_validator('temperature')
    @classmethod
    def validate_temperature(cls, v):
        if not 0.0 <= v <= 2.0:
            raise ValueError('Temperature must be between 0.0 and 2.0')
        return v


class EmbeddingSettings(BaseModel):
    """Embedding Model Configuration"""
    model_name: str = Field(default="nomic-embed-text", description="Embedding model name")
    base_url: str = Field(default="http://localhost:11434", description="Ollama base URL")
    dimension: Optional[int] = Field(default=None, description="Expected embedding dimension")
    timeout: float = Field(default=60, gt=0, le=300, description="Request timeout in seconds")


class ExtractionSettings(BaseModel):
    """CV extraction pipeline thresholds"""
    min_text_length: int = Field(default=50, ge=0, description="Minimum cleaned text length to trust the text layer")
    min_alnum_ratio: float = Field(default=0.3, ge=0.0, le=1.0, description="Minimum alphanumeric ratio to trust the text layer")
    render_zoom: float = Field(default=2.0, gt=0.0, le=8.0, description="Page render zoom (2.0 ~ 144 DPI)")
    max_pages: int = Field(default=10, ge=1, description="Maximum pages rendered for the vision path")
    upload_dir: str = Field(default="uploads", description="Transient storage for uploaded files")


class MatchSettings(BaseModel):
    """Match scoring and cache configuration"""
    cache_ttl_seconds: int = Field(default=604800, gt=0, description="Match cache TTL (7 days)")
    max_concurrent: int = Field(default=5, ge=1, le=50, description="Maximum concurrent scoring requests")
    default_limit: int = Field(default=10, ge=1, description="Default number of matches returned")
    batch_size: int = Field(default=5, ge=1, le=50, description="Jobs per batch scoring request")


class SearchSettings(BaseModel):
    """Hybrid search configuration"""
    min_semantic_length: int = Field(default=3, ge=0, description="Shortest residual query that is embedded")
    default_limit: int = Field(default=10, ge=1, description="Default number of search results")


class Settings(BaseModel):
    """Complete backend configuration"""
    database: DatabaseSettings = Field(default_factory=DatabaseSettings)
    llm: LLMSettings = Field(default_factory=LLMSettings)
    embedding: EmbeddingSettings = Field(default_factory=EmbeddingSettings)
    extraction: ExtractionSettings = Field(default_factory=ExtractionSettings)
    matching: MatchSettings = Field(default_factory=MatchSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)


# env var -> (section, field)
ENV_MAPPING = {
    "MONGO_URI": ("database", "uri"),
    "DB_NAME": ("database", "db_name"),
    "LLM_MODEL": ("llm", "model_name"),
    "VISION_MODEL": ("llm", "vision_model_name"),
    "LLM_TEMPERATURE": ("llm", "temperature"),
    "LLM_TIMEOUT": ("llm", "timeout"),
    "EMBED_MODEL": ("embedding", "model_name"),
    "EMBED_DIMENSION": ("embedding", "dimension"),
    "EMBED_TIMEOUT": ("embedding", "timeout"),
    "MIN_TEXT_LENGTH": ("extraction", "min_text_length"),
    "MIN_ALNUM_RATIO": ("extraction", "min_alnum_ratio"),
    "RENDER_ZOOM": ("extraction", "render_zoom"),
    "MAX_PAGES": ("extraction", "max_pages"),
    "UPLOAD_DIR": ("extraction", "upload_dir"),
    "MATCH_CACHE_TTL": ("matching", "cache_ttl_seconds"),
    "MATCH_MAX_CONCURRENT": ("matching", "max_concurrent"),
    "MATCH_DEFAULT_LIMIT": ("matching", "default_limit"),
    "MATCH_BATCH_SIZE": ("matching", "batch_size"),
    "SEARCH_MIN_SEMANTIC_LENGTH": ("search", "min_semantic_length"),
    "SEARCH_DEFAULT_LIMIT": ("search", "default_limit"),
}


def load_settings(env_file: Optional[str] = None) -> Settings:
    """Build Settings from .env + process environment"""
    load_dotenv(env_file)

    raw = {section: {} for section in Settings.model_fields}
    for env_key, (section, field) in ENV_MAPPING.items():
        value = os.getenv(env_key)
        if value is not None and value != "":
            raw[section][field] = value

    # OLLAMA_BASE_URL feeds both model clients
    base_url = os.getenv("OLLAMA_BASE_URL")
    if base_url:
        raw["llm"].setdefault("base_url", base_url)
        raw["embedding"].setdefault("base_url", base_url)

    try:
        return Settings(**raw)
    except PydanticValidationError as e:
        first = e.errors()[0] if e.errors() else {}
        key = ".".join(str(p) for p in first.get("loc", ()))
        raise ConfigurationError(f"Invalid configuration: {e}", config_key=key, cause=e) from e
