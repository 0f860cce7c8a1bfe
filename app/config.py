"""
Application Configuration.

Pydantic settings for type-safe environment configuration.
Every threshold the comparison engine uses can be tuned here.
"""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from src.diffing.schemas import WhitespaceMode


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # === Token Diff ===
    whitespace_mode: WhitespaceMode = Field(
        default=WhitespaceMode.NORMALIZE,
        description="Whitespace handling: 'preserve', 'normalize' or 'ignore'",
    )
    token_similar_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Edit ratio above which a delete/insert pair becomes Similar",
    )

    # === Section Alignment ===
    title_weight: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Weight of title similarity in the section similarity blend",
    )
    body_weight: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Weight of body similarity in the section similarity blend",
    )
    accept_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum similarity for an automatic one-to-one section match",
    )
    split_candidate_threshold: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Minimum containment for a section to join a split/merge group",
    )
    split_accept_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Minimum combined coverage to accept a split/merge group",
    )
    split_merge_discount: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Confidence discount applied to split/merge correspondences",
    )
    unmatched_confidence: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Confidence assigned to inserted/deleted sections",
    )
    review_threshold: float = Field(
        default=0.75,
        ge=0.0,
        le=1.0,
        description="Correspondences below this confidence produce a review warning",
    )

    # === Match Classification ===
    upper_threshold: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Score at or above which a match is Definite",
    )
    lower_threshold: float = Field(
        default=0.3,
        ge=0.0,
        le=1.0,
        description="Score at or below which a match is NoMatch",
    )
    both_unresolved_confidence: float = Field(
        default=0.7,
        ge=0.0,
        le=1.0,
        description="Fixed confidence of a hole-to-hole identity hypothesis",
    )
    conflicting_chains_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Fixed confidence when canonical names agree but chains differ",
    )

    # === Semantic Diff ===
    verification_discount: float = Field(
        default=0.85,
        ge=0.0,
        le=1.0,
        description="Confidence multiplier when a supporting binding needs verification",
    )
    beneficiary_confidence_floor: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Beneficiary detections below this confidence need verification",
    )

    # === Execution ===
    max_workers: int = Field(
        default=4,
        ge=1,
        description="Worker threads used for per-section token diffs",
    )

    # === Logging ===
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Logging level",
    )

    @model_validator(mode="after")
    def check_zone_thresholds(self) -> "Settings":
        """Zones must not overlap."""
        if self.lower_threshold >= self.upper_threshold:
            raise ValueError(
                f"lower_threshold ({self.lower_threshold}) must be below "
                f"upper_threshold ({self.upper_threshold})"
            )
        if self.title_weight + self.body_weight <= 0:
            raise ValueError("title_weight and body_weight cannot both be zero")
        return self


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
