"""Voting models: per-voter opinions and the resolved consensus."""

from datetime import datetime, timezone
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ConsensusAlgorithm(str, Enum):
    """Supported consensus algorithms."""

    WEIGHTED_MAJORITY = "weighted-majority"
    PLURALITY = "plurality"
    CONFIDENCE_WEIGHTED = "confidence-weighted"
    BORDA_COUNT = "borda-count"
    CONDORCET = "condorcet"  # alias of weighted-majority
    APPROVAL_VOTING = "approval-voting"  # alias of plurality


class AgreementLevel(str, Enum):
    """How much the valid votes agree with each other."""

    UNANIMOUS = "unanimous"
    MAJORITY = "majority"
    PLURALITY = "plurality"
    SPLIT = "split"
    FAILED = "failed"

    @property
    def description(self) -> str:
        """Human-readable description of the agreement level."""
        return _AGREEMENT_DESCRIPTIONS[self]


_AGREEMENT_DESCRIPTIONS = {
    AgreementLevel.UNANIMOUS: "Unanimous - all voters agree",
    AgreementLevel.MAJORITY: "Majority - more than half of the voters agree",
    AgreementLevel.PLURALITY: "Plurality - most common answer without a majority",
    AgreementLevel.SPLIT: "Split - no clear consensus",
    AgreementLevel.FAILED: "Failed - consensus could not be reached",
}


class Vote(BaseModel):
    """One voter's opinion about one utterance."""

    model_config = {"frozen": True}

    voter_id: str = Field(description="Identifier of the classifier that voted")
    voter_name: str | None = None
    weight: float = Field(default=1.0, gt=0.0, description="Static voter weight")
    intent: str | None = Field(default=None, description="Proposed intent label")
    confidence: float | None = Field(
        default=None,
        description="Voter confidence in [0, 1]; None or negative marks the vote invalid",
    )
    entities: dict[str, Any] = Field(default_factory=dict)
    subtasks: list[dict[str, Any]] = Field(
        default_factory=list,
        description="Subtasks proposed by this voter",
    )
    reasoning: str | None = None

    @property
    def is_valid(self) -> bool:
        """A vote counts only with a non-blank intent and a non-negative confidence."""
        return (
            self.intent is not None
            and bool(self.intent.strip())
            and self.confidence is not None
            and self.confidence >= 0.0
        )


class ConsensusDecision(BaseModel):
    """The aggregator's single resolved output across all votes."""

    model_config = {
        "frozen": True,
        "json_schema_extra": {
            "examples": [
                {
                    "decision_id": "consensus-3f2a9c1e0b7d",
                    "intent": "encender_luz",
                    "confidence": 0.75,
                    "participating_votes": 3,
                    "total_votes": 3,
                    "agreement_level": "majority",
                    "method": "weighted-majority",
                    "entities": {"lugar": "salon"},
                    "subtasks": [],
                    "reasoning": [
                        "Consensus reached using algorithm 'weighted-majority'",
                        "Votes received: 3, valid: 3",
                    ],
                    "metrics": {"average_confidence": 0.883},
                }
            ]
        },
    }

    decision_id: str
    intent: str = Field(description="Winning intent label, 'unknown' when failed")
    confidence: float = Field(ge=0.0, le=1.0)
    participating_votes: int = Field(ge=0)
    total_votes: int = Field(ge=0)
    agreement_level: AgreementLevel
    method: str = Field(description="Algorithm actually applied, or 'failed'")
    entities: dict[str, Any] = Field(default_factory=dict)
    subtasks: list[dict[str, Any]] = Field(default_factory=list)
    reasoning: list[str] = Field(default_factory=list)
    metrics: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def is_failed(self) -> bool:
        """Whether consensus could not be reached."""
        return self.agreement_level == AgreementLevel.FAILED

    @property
    def reasoning_text(self) -> str:
        """Reasoning trace joined into a single audit string."""
        return "\n".join(self.reasoning)
