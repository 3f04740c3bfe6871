"""Vote aggregation: resolve one intent from many classifier opinions."""

import copy
import logging
import uuid
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Any

from decision_engine.config import ConsensusConfig
from decision_engine.exceptions import InvalidBatchError
from decision_engine.models.vote import (
    AgreementLevel,
    ConsensusAlgorithm,
    ConsensusDecision,
    Vote,
)

logger = logging.getLogger(__name__)

UNKNOWN_INTENT = "unknown"


@dataclass
class TallyResult:
    """Winner of one algorithm run over the valid votes."""

    intent: str
    confidence: float
    scores: dict[str, float] = field(default_factory=dict)
    boost_applied: bool = False


class VoteAggregator:
    """
    Aggregate per-voter opinions about one utterance into a single decision.

    Supports several scoring algorithms over the valid votes:
    - weighted-majority: sum of weight x confidence per intent (default)
    - plurality: raw vote count per intent
    - confidence-weighted: weighted-majority with every weight set to 1, never boosted
    - borda-count: sum of voter weight per intent, confidence ignored
    - condorcet / approval-voting: aliases of weighted-majority / plurality

    Ties resolve to the intent encountered first in input order. Malformed
    votes are discarded, and a quorum miss or unexpected fault produces a
    FAILED decision instead of an exception.
    """

    ALIASES: dict[ConsensusAlgorithm, ConsensusAlgorithm] = {
        ConsensusAlgorithm.CONDORCET: ConsensusAlgorithm.WEIGHTED_MAJORITY,
        ConsensusAlgorithm.APPROVAL_VOTING: ConsensusAlgorithm.PLURALITY,
    }

    def __init__(self, config: ConsensusConfig | None = None) -> None:
        """
        Initialize the aggregator.

        Args:
            config: Default configuration, overridable per call.
        """
        self.config = config or ConsensusConfig()
        self._algorithms: dict[
            ConsensusAlgorithm, Callable[[list[Vote], ConsensusConfig], TallyResult]
        ] = {
            ConsensusAlgorithm.WEIGHTED_MAJORITY: self._weighted_majority,
            ConsensusAlgorithm.PLURALITY: self._plurality,
            ConsensusAlgorithm.CONFIDENCE_WEIGHTED: self._confidence_weighted,
            ConsensusAlgorithm.BORDA_COUNT: self._borda_count,
        }

    def aggregate(
        self,
        votes: Sequence[Vote | None],
        min_votes: int | None = None,
        algorithm: str | ConsensusAlgorithm | None = None,
        config: ConsensusConfig | None = None,
        round_id: str | None = None,
    ) -> ConsensusDecision:
        """
        Resolve a consensus decision from a batch of votes.

        Args:
            votes: Votes for one utterance. None entries are ignored.
            min_votes: Minimum valid votes required. Defaults to the config value.
            algorithm: Algorithm name. Defaults to the config value.
            config: Configuration for this call. Defaults to the instance config.
            round_id: Optional voting round id, embedded in the decision id.

        Returns:
            ConsensusDecision, FAILED when the quorum is missed.

        Raises:
            InvalidBatchError: If votes is None or min_votes is negative.
        """
        if votes is None:
            raise InvalidBatchError("Vote batch must not be None")

        cfg = config or self.config
        required = cfg.min_votes if min_votes is None else min_votes
        if required < 0:
            raise InvalidBatchError(f"min_votes must be >= 0, got {required}")

        requested = algorithm if algorithm is not None else cfg.algorithm
        requested_name = (
            requested.value if isinstance(requested, ConsensusAlgorithm) else str(requested)
        )

        votes = list(votes)
        valid_votes = self.filter_valid_votes(votes)
        logger.info(
            f"Aggregating {len(votes)} votes ({len(valid_votes)} valid) "
            f"with algorithm '{requested_name}'"
        )

        if len(valid_votes) < required:
            logger.warning(
                f"Insufficient votes for consensus: {len(valid_votes)} < {required}"
            )
            return self._failed_decision(
                total_votes=len(votes),
                valid_votes=len(valid_votes),
                min_votes=required,
                algorithm=requested_name,
                reason=(
                    f"Insufficient valid votes: {len(valid_votes)} of {len(votes)} "
                    f"received, {required} required"
                ),
            )

        try:
            decision = self._decide(votes, valid_votes, requested_name, cfg, round_id)
        except Exception as e:
            logger.exception("Unexpected error while aggregating votes")
            return self._failed_decision(
                total_votes=len(votes),
                valid_votes=len(valid_votes),
                min_votes=required,
                algorithm=requested_name,
                reason=f"Aggregation error: {e}",
            )

        logger.info(
            f"Consensus reached: {decision.intent} "
            f"(confidence: {decision.confidence:.2f}, agreement: {decision.agreement_level.value})"
        )
        return decision

    def filter_valid_votes(self, votes: Sequence[Vote | None]) -> list[Vote]:
        """Keep votes with a non-blank intent and a non-negative confidence."""
        return [vote for vote in votes if vote is not None and vote.is_valid]

    def resolve_algorithm(self, name: str) -> tuple[ConsensusAlgorithm, bool]:
        """
        Map an algorithm name to the algorithm that will actually run.

        Returns:
            (applied algorithm, whether the name was unknown and fell back).
        """
        try:
            algorithm = ConsensusAlgorithm(name.strip().lower())
        except ValueError:
            logger.warning(f"Unknown consensus algorithm '{name}', using weighted-majority")
            return ConsensusAlgorithm.WEIGHTED_MAJORITY, True

        return self.ALIASES.get(algorithm, algorithm), False

    def classify_agreement(self, valid_votes: Sequence[Vote]) -> AgreementLevel:
        """
        Classify how strongly the valid votes agree.

        UNANIMOUS for a single label, MAJORITY when the largest group holds
        more than half the votes, PLURALITY when it holds more than one vote,
        SPLIT otherwise.
        """
        counts = _count_labels(valid_votes)
        if len(counts) == 1:
            return AgreementLevel.UNANIMOUS

        largest = max(counts.values(), default=0)
        if largest > len(valid_votes) * 0.5:
            return AgreementLevel.MAJORITY
        if largest > 1:
            return AgreementLevel.PLURALITY
        return AgreementLevel.SPLIT

    def merge_entities(self, valid_votes: Sequence[Vote]) -> dict[str, Any]:
        """
        Merge entity maps across votes.

        Keys keep their first-seen order. Each key takes its most frequent
        value; ties go to the value seen first.
        """
        collected: dict[str, list[Any]] = {}
        for vote in valid_votes:
            for key, value in vote.entities.items():
                collected.setdefault(key, []).append(value)

        return {key: copy.deepcopy(_most_common(values)) for key, values in collected.items()}

    def consolidate_subtasks(self, valid_votes: Sequence[Vote]) -> list[dict[str, Any]]:
        """Concatenate proposed subtasks, dropping structural duplicates."""
        unique: list[dict[str, Any]] = []
        for vote in valid_votes:
            for subtask in vote.subtasks:
                if subtask not in unique:
                    unique.append(subtask)
        return copy.deepcopy(unique)

    def describe(self, config: ConsensusConfig | None = None) -> dict[str, Any]:
        """Snapshot of the effective configuration."""
        return (config or self.config).model_dump()

    def _decide(
        self,
        votes: list[Vote | None],
        valid_votes: list[Vote],
        requested_name: str,
        cfg: ConsensusConfig,
        round_id: str | None,
    ) -> ConsensusDecision:
        """Run the selected algorithm and assemble the decision."""
        applied, fell_back = self.resolve_algorithm(requested_name)
        tally = self._algorithms[applied](valid_votes, cfg)
        agreement = self.classify_agreement(valid_votes)

        entities = self.merge_entities(valid_votes) if cfg.enable_entity_merging else {}
        subtasks = (
            self.consolidate_subtasks(valid_votes) if cfg.enable_subtask_consolidation else []
        )

        metrics = {
            "average_confidence": sum(v.confidence for v in valid_votes) / len(valid_votes)
            if valid_votes
            else 0.0,
            "valid_votes": len(valid_votes),
            "total_votes": len(votes),
            "algorithm": applied.value,
            "requested_algorithm": requested_name,
            "algorithm_fallback": fell_back,
            "confidence_threshold": cfg.confidence_threshold,
            "weighted_scoring_enabled": cfg.enable_weighted_scoring,
            "confidence_boosting_enabled": cfg.enable_confidence_boosting,
            "boost_applied": tally.boost_applied,
            "intent_scores": dict(tally.scores),
        }

        reasoning = [f"Consensus reached using algorithm '{applied.value}'"]
        if fell_back:
            reasoning.append(f"Unknown algorithm '{requested_name}', fell back to weighted-majority")
        elif applied.value != requested_name.strip().lower():
            reasoning.append(f"Requested '{requested_name}' runs as '{applied.value}'")
        reasoning.extend([
            f"Votes received: {len(votes)}, valid: {len(valid_votes)}",
            f"Agreement level: {agreement.description}",
            f"Winning intent: {tally.intent}",
            f"Consensus confidence: {tally.confidence:.2f}"
            + (" (boosted)" if tally.boost_applied else ""),
            "Vote details:",
        ])
        reasoning.extend(_describe_vote(vote) for vote in votes if vote is not None)

        return ConsensusDecision(
            decision_id=_decision_id("consensus", round_id),
            intent=tally.intent,
            confidence=tally.confidence,
            participating_votes=len(valid_votes),
            total_votes=len(votes),
            agreement_level=agreement,
            method=applied.value,
            entities=entities,
            subtasks=subtasks,
            reasoning=reasoning,
            metrics=metrics,
        )

    def _weighted_majority(
        self,
        valid_votes: list[Vote],
        cfg: ConsensusConfig,
        use_weights: bool = True,
        boost: bool = True,
    ) -> TallyResult:
        """Sum weight x confidence per intent; winner takes its share of the total."""
        scores: dict[str, float] = {}
        for vote in valid_votes:
            weight = vote.weight if use_weights and cfg.enable_weighted_scoring else 1.0
            label = _label(vote)
            scores[label] = scores.get(label, 0.0) + weight * vote.confidence

        intent, confidence = _winning_share(scores)

        boost_applied = False
        if boost and cfg.enable_confidence_boosting and confidence >= cfg.confidence_threshold:
            confidence = min(1.0, confidence + cfg.confidence_boost_factor)
            boost_applied = True

        return TallyResult(intent, confidence, scores, boost_applied)

    def _confidence_weighted(self, valid_votes: list[Vote], cfg: ConsensusConfig) -> TallyResult:
        """Unit weights and no boost: the winner's raw share of summed confidence."""
        return self._weighted_majority(valid_votes, cfg, use_weights=False, boost=False)

    def _plurality(self, valid_votes: list[Vote], cfg: ConsensusConfig) -> TallyResult:
        """Most raw votes wins; confidence is its share of the valid votes."""
        counts = _count_labels(valid_votes)
        if not counts:
            return TallyResult(UNKNOWN_INTENT, 0.0)

        intent = max(counts, key=counts.__getitem__)
        confidence = counts[intent] / len(valid_votes)
        return TallyResult(intent, confidence, {k: float(v) for k, v in counts.items()})

    def _borda_count(self, valid_votes: list[Vote], cfg: ConsensusConfig) -> TallyResult:
        """Simplified Borda: accumulate voter weight per intent, ignore confidence."""
        scores: dict[str, float] = {}
        for vote in valid_votes:
            weight = vote.weight if cfg.enable_weighted_scoring else 1.0
            label = _label(vote)
            scores[label] = scores.get(label, 0.0) + weight

        intent, confidence = _winning_share(scores)
        return TallyResult(intent, confidence, scores)

    def _failed_decision(
        self,
        total_votes: int,
        valid_votes: int,
        min_votes: int,
        algorithm: str,
        reason: str,
    ) -> ConsensusDecision:
        """Build the FAILED decision returned instead of raising."""
        return ConsensusDecision(
            decision_id=_decision_id("failed-consensus", None),
            intent=UNKNOWN_INTENT,
            confidence=0.0,
            participating_votes=0,
            total_votes=total_votes,
            agreement_level=AgreementLevel.FAILED,
            method="failed",
            reasoning=[
                "Consensus could not be reached",
                reason,
                f"Valid votes: {valid_votes}, minimum required: {min_votes}",
                f"Algorithm: {algorithm}",
            ],
            metrics={
                "valid_votes": valid_votes,
                "total_votes": total_votes,
                "min_votes": min_votes,
                "algorithm": algorithm,
            },
        )


def _label(vote: Vote) -> str:
    return vote.intent.strip()


def _count_labels(votes: Sequence[Vote]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for vote in votes:
        label = _label(vote)
        counts[label] = counts.get(label, 0) + 1
    return counts


def _winning_share(scores: dict[str, float]) -> tuple[str, float]:
    """First maximum in insertion order, with its share of the total score."""
    if not scores:
        return UNKNOWN_INTENT, 0.0

    winner = max(scores, key=scores.__getitem__)
    total = sum(scores.values())
    share = scores[winner] / total if total > 0 else 0.0
    return winner, min(1.0, max(0.0, share))


def _most_common(values: list[Any]) -> Any:
    """Most frequent value by equality; ties keep the first seen."""
    distinct: list[Any] = []
    counts: list[int] = []
    for value in values:
        for index, seen in enumerate(distinct):
            if seen == value:
                counts[index] += 1
                break
        else:
            distinct.append(value)
            counts.append(1)

    best = max(range(len(distinct)), key=counts.__getitem__)
    return distinct[best]


def _describe_vote(vote: Vote) -> str:
    confidence = "n/a" if vote.confidence is None else f"{vote.confidence:.2f}"
    line = (
        f"- {vote.voter_id}: {vote.intent} "
        f"(confidence: {confidence}, weight: {vote.weight:.2f})"
    )
    return line if vote.is_valid else f"{line} [discarded]"


def _decision_id(prefix: str, round_id: str | None) -> str:
    suffix = uuid.uuid4().hex[:12]
    return f"{prefix}-{round_id}-{suffix}" if round_id else f"{prefix}-{suffix}"
