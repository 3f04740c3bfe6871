"""Configuration management using pydantic-settings."""

from enum import Enum
from functools import lru_cache

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class TruncationStrategy(str, Enum):
    """How oversized subtask batches are cut down to the configured cap."""

    ORDER = "order"  # keep the first N in proposal order
    PRIORITY = "priority"  # keep the N highest-priority, stable by order


class ConsensusConfig(BaseModel):
    """Per-call configuration for vote aggregation."""

    model_config = {"frozen": True}

    algorithm: str = Field(
        default="weighted-majority",
        description="Consensus algorithm name",
    )
    min_votes: int = Field(
        default=2,
        ge=0,
        description="Minimum number of valid votes required for a decision",
    )
    confidence_threshold: float = Field(
        default=0.6,
        ge=0.0,
        le=1.0,
        description="Consensus confidence at which the boost is applied",
    )
    enable_weighted_scoring: bool = Field(
        default=True,
        description="Use voter weights when scoring (otherwise weight = 1)",
    )
    enable_confidence_boosting: bool = Field(
        default=True,
        description="Boost consensus confidence once it reaches the threshold",
    )
    confidence_boost_factor: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Amount added to confidence when boosting",
    )
    enable_entity_merging: bool = Field(
        default=True,
        description="Merge entity maps across valid votes",
    )
    enable_subtask_consolidation: bool = Field(
        default=True,
        description="Union and deduplicate subtask proposals across valid votes",
    )


class DecompositionConfig(BaseModel):
    """Per-call configuration for subtask planning."""

    model_config = {"frozen": True}

    max_subtasks_per_request: int = Field(
        default=10,
        ge=1,
        description="Subtasks beyond this cap are truncated",
    )
    truncation_strategy: TruncationStrategy = Field(
        default=TruncationStrategy.ORDER,
        description="How the cap picks which subtasks survive",
    )
    enable_dependency_detection: bool = Field(
        default=True,
        description="Run the dependency detector on multi-subtask batches",
    )
    enable_priority_assignment: bool = Field(
        default=True,
        description="Assign priorities from action keywords",
    )
    enable_parallel_execution: bool = Field(
        default=True,
        description="Allow PARALLEL steps and emit parallel groups",
    )
    default_confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Confidence used for subtasks that carry none",
    )
    default_duration_ms: int = Field(
        default=1000,
        ge=0,
        description="Duration used for subtasks without an estimate",
    )
    complexity_penalty: float = Field(
        default=0.05,
        ge=0.0,
        description="Confidence decay per additional subtask",
    )
    min_complexity_factor: float = Field(
        default=0.1,
        ge=0.0,
        le=1.0,
        description="Floor for the complexity decay factor",
    )


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Consensus
    consensus_algorithm: str = Field(
        default="weighted-majority",
        description="Consensus algorithm (weighted-majority, plurality, borda-count, ...)",
    )
    consensus_min_votes: int = Field(
        default=2,
        description="Minimum valid votes for a consensus",
    )
    consensus_confidence_threshold: float = Field(
        default=0.6,
        description="Consensus confidence at which boosting kicks in",
    )
    consensus_enable_weighted_scoring: bool = Field(
        default=True,
        description="Weight votes by voter weight",
    )
    consensus_enable_confidence_boosting: bool = Field(
        default=True,
        description="Enable the consensus confidence boost",
    )
    consensus_confidence_boost_factor: float = Field(
        default=0.1,
        description="Confidence boost amount",
    )
    consensus_enable_entity_merging: bool = Field(
        default=True,
        description="Merge entities across votes",
    )
    consensus_enable_subtask_consolidation: bool = Field(
        default=True,
        description="Consolidate subtasks across votes",
    )

    # Task decomposition
    decomposition_max_subtasks: int = Field(
        default=10,
        description="Maximum subtasks per request",
    )
    decomposition_truncation_strategy: TruncationStrategy = Field(
        default=TruncationStrategy.ORDER,
        description="Truncation strategy for oversized batches (order, priority)",
    )
    decomposition_enable_dependency_detection: bool = Field(
        default=True,
        description="Enable dependency detection",
    )
    decomposition_enable_priority_assignment: bool = Field(
        default=True,
        description="Enable keyword priority assignment",
    )
    decomposition_enable_parallel_execution: bool = Field(
        default=True,
        description="Enable parallel execution steps",
    )

    # Observability
    log_level: str = Field(
        default="INFO",
        description="Log level (DEBUG, INFO, WARNING, ERROR)",
    )
    log_json: bool = Field(
        default=True,
        description="Enable JSON structured logging",
    )
    enable_metrics: bool = Field(
        default=True,
        description="Record OpenTelemetry metrics",
    )
    service_name: str = Field(
        default="decision-engine",
        description="Service name for telemetry",
    )

    def consensus_config(self) -> ConsensusConfig:
        """Build the consensus configuration value from settings."""
        return ConsensusConfig(
            algorithm=self.consensus_algorithm,
            min_votes=self.consensus_min_votes,
            confidence_threshold=self.consensus_confidence_threshold,
            enable_weighted_scoring=self.consensus_enable_weighted_scoring,
            enable_confidence_boosting=self.consensus_enable_confidence_boosting,
            confidence_boost_factor=self.consensus_confidence_boost_factor,
            enable_entity_merging=self.consensus_enable_entity_merging,
            enable_subtask_consolidation=self.consensus_enable_subtask_consolidation,
        )

    def decomposition_config(self) -> DecompositionConfig:
        """Build the decomposition configuration value from settings."""
        return DecompositionConfig(
            max_subtasks_per_request=self.decomposition_max_subtasks,
            truncation_strategy=self.decomposition_truncation_strategy,
            enable_dependency_detection=self.decomposition_enable_dependency_detection,
            enable_priority_assignment=self.decomposition_enable_priority_assignment,
            enable_parallel_execution=self.decomposition_enable_parallel_execution,
        )


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
