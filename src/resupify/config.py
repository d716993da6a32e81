from __future__ import annotations

from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

RATE_LIMIT_FAMILIES = ("evidence", "kit", "outreach", "batch_sprint")


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Resupify"
    app_env: str = "development"
    app_host: str = "127.0.0.1"
    app_port: int = 8788
    log_level: str = "INFO"

    database_url: str = "sqlite:///./data/resupify.db"
    data_dir: Path = Path("./data")
    artifact_dir: Path = Path("./data/artifacts")

    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com/v1"
    openai_model_extractor: str = "gpt-5-mini"
    openai_model_scorer: str = "gpt-5"
    openai_model_writer: str = "gpt-5-mini"
    openai_timeout_sec: int = 60

    local_llm_enabled: bool = False
    local_llm_base_url: str = "http://localhost:11434/v1"
    local_llm_api_key: str = "local"
    local_llm_model: str = "qwen2.5:14b-instruct"
    local_llm_timeout_sec: int = 90

    llm_router_default: str = "openai"
    llm_router_extract_provider: str = "openai"
    llm_router_score_provider: str = "openai"
    llm_router_writer_provider: str = "openai"

    starting_credits: int = 3
    credit_cost_evidence: int = 1
    credit_cost_kit: int = 0
    credit_cost_outreach: int = 1
    credit_cost_batch_sprint: int = 5

    rate_limit_evidence: int = 10
    rate_limit_kit: int = 10
    rate_limit_outreach: int = 10
    rate_limit_batch_sprint: int = 10
    rate_limit_window_sec: int = 600
    idempotency_ttl_sec: int = 300

    jd_max_extract_chars: int = 12000
    jd_max_chars: int = 25000
    resume_max_chars: int = 25000
    personalization_excerpt_chars: int = 800
    personalization_max_sources: int = 3
    personalization_sources_per_job: int = 5
    personalization_min_text_chars: int = 50
    personalization_max_text_chars: int = 5000

    score_weight_evidence_strength: float = 0.40
    score_weight_keyword_coverage: float = 0.25
    score_weight_formatting_ats: float = 0.15
    score_weight_role_fit: float = 0.20
    score_pack_blend: float = 0.5

    batch_max_job_cards: int = 10
    batch_max_workers: int = 4
    batch_refund_policy: str = "prorated"

    default_region_code: str = "CA"
    default_track_code: str = "NEW_GRAD"

    cors_origins: str = "http://127.0.0.1:8788"

    @field_validator("app_env")
    @classmethod
    def validate_env(cls, value: str) -> str:
        allowed = {"development", "staging", "production", "test"}
        if value not in allowed:
            raise ValueError(f"app_env must be one of {sorted(allowed)}")
        return value

    @field_validator("batch_refund_policy")
    @classmethod
    def validate_refund_policy(cls, value: str) -> str:
        allowed = {"prorated", "all_failed", "none"}
        if value not in allowed:
            raise ValueError(f"batch_refund_policy must be one of {sorted(allowed)}")
        return value

    @field_validator("score_pack_blend")
    @classmethod
    def validate_blend(cls, value: float) -> float:
        if value < 0 or value > 1:
            raise ValueError("score_pack_blend must be between 0 and 1")
        return value

    @model_validator(mode="after")
    def validate_category_weights(self) -> Settings:
        total = sum(self.category_weights.values())
        if abs(total - 1.0) > 1e-6:
            raise ValueError(f"score category weights must sum to 1.0, got {total:.3f}")
        return self

    @property
    def category_weights(self) -> dict[str, float]:
        return {
            "evidence_strength": self.score_weight_evidence_strength,
            "keyword_coverage": self.score_weight_keyword_coverage,
            "formatting_ats": self.score_weight_formatting_ats,
            "role_fit": self.score_weight_role_fit,
        }

    @property
    def cors_origin_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def rate_limit_for(self, family: str) -> int:
        if family not in RATE_LIMIT_FAMILIES:
            raise KeyError(f"unknown rate limit family {family}")
        return int(getattr(self, f"rate_limit_{family}"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
