"""Tests for the vote aggregator."""

import pytest

from decision_engine.config import ConsensusConfig
from decision_engine.exceptions import InvalidBatchError
from decision_engine.models.vote import AgreementLevel, ConsensusAlgorithm, Vote
from decision_engine.reasoners.consensus import VoteAggregator


@pytest.fixture
def aggregator() -> VoteAggregator:
    """Create an aggregator with default configuration."""
    return VoteAggregator()


@pytest.fixture
def no_boost() -> ConsensusConfig:
    """Configuration without confidence boosting."""
    return ConsensusConfig(enable_confidence_boosting=False)


def make_vote(
    voter_id: str,
    intent: str | None,
    confidence: float | None = 0.8,
    weight: float = 1.0,
    entities: dict | None = None,
    subtasks: list[dict] | None = None,
) -> Vote:
    """Helper to create a Vote."""
    return Vote(
        voter_id=voter_id,
        intent=intent,
        confidence=confidence,
        weight=weight,
        entities=entities or {},
        subtasks=subtasks or [],
    )


class TestWeightedMajority:
    """Tests for the default weighted-majority algorithm."""

    def test_light_scenario_picks_majority_intent(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        """Two light-on votes outscore one heavier light-off vote."""
        result = aggregator.aggregate(light_votes)

        assert result.intent == "encender_luz"
        assert result.agreement_level == AgreementLevel.MAJORITY
        assert result.method == "weighted-majority"
        assert result.metrics["intent_scores"]["encender_luz"] == pytest.approx(1.7)
        assert result.metrics["intent_scores"]["apagar_luz"] == pytest.approx(0.855)

    def test_light_scenario_confidence_is_boosted(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        """Share of 1.7 / 2.555 clears the 0.6 threshold and gets the 0.1 boost."""
        result = aggregator.aggregate(light_votes)

        assert result.confidence == pytest.approx(1.7 / 2.555 + 0.1)
        assert result.metrics["boost_applied"] is True

    def test_no_boost_below_threshold(self, aggregator: VoteAggregator) -> None:
        """Winning share under the threshold is reported unchanged."""
        votes = [
            make_vote("A", "x", 0.5),
            make_vote("B", "y", 0.4),
            make_vote("C", "z", 0.4),
        ]

        result = aggregator.aggregate(votes)

        assert result.intent == "x"
        assert result.confidence == pytest.approx(0.5 / 1.3)
        assert result.metrics["boost_applied"] is False

    def test_boosting_disabled(
        self, aggregator: VoteAggregator, light_votes: list[Vote], no_boost: ConsensusConfig
    ) -> None:
        """Per-call config turns boosting off."""
        result = aggregator.aggregate(light_votes, config=no_boost)

        assert result.confidence == pytest.approx(1.7 / 2.555)

    def test_unanimous_without_boost_is_full_confidence(
        self, aggregator: VoteAggregator, no_boost: ConsensusConfig
    ) -> None:
        """All voters agreeing yields UNANIMOUS at confidence 1.0."""
        votes = [make_vote(v, "encender_luz", c) for v, c in [("A", 0.9), ("B", 0.7), ("C", 0.6)]]

        result = aggregator.aggregate(votes, config=no_boost)

        assert result.agreement_level == AgreementLevel.UNANIMOUS
        assert result.confidence == 1.0

    def test_boost_is_clamped(self, aggregator: VoteAggregator) -> None:
        """Boosting a full-confidence decision stays at 1.0."""
        votes = [make_vote("A", "x", 0.9), make_vote("B", "x", 0.9)]

        result = aggregator.aggregate(votes)

        assert result.confidence == 1.0

    def test_tie_goes_to_first_encountered_intent(
        self, aggregator: VoteAggregator
    ) -> None:
        """Equal scores resolve by input order."""
        votes = [make_vote("A", "apagar_luz", 0.8), make_vote("B", "encender_luz", 0.8)]

        assert aggregator.aggregate(votes).intent == "apagar_luz"

        votes.reverse()
        assert aggregator.aggregate(votes).intent == "encender_luz"

    def test_raising_weight_flips_winner(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        """A heavier voter pulls the decision towards its intent."""
        heavy = light_votes[:2] + [
            make_vote("C", "apagar_luz", 0.95, weight=5.0),
        ]

        result = aggregator.aggregate(heavy)

        assert result.intent == "apagar_luz"

    def test_weights_ignored_when_weighted_scoring_disabled(
        self, aggregator: VoteAggregator
    ) -> None:
        """Without weighted scoring every voter counts the same."""
        votes = [make_vote("A", "x", 0.6, weight=3.0), make_vote("B", "y", 0.7)]
        config = ConsensusConfig(enable_weighted_scoring=False)

        assert aggregator.aggregate(votes).intent == "x"
        assert aggregator.aggregate(votes, config=config).intent == "y"

    def test_zero_confidence_votes(self, aggregator: VoteAggregator) -> None:
        """All-zero scores still produce a winner with zero confidence."""
        votes = [make_vote("A", "x", 0.0), make_vote("B", "y", 0.0)]

        result = aggregator.aggregate(votes)

        assert result.intent == "x"
        assert result.confidence == 0.0


class TestOtherAlgorithms:
    """Tests for plurality, confidence-weighted, borda-count and aliases."""

    def test_plurality_counts_votes(self, aggregator: VoteAggregator) -> None:
        """Plurality ignores confidence and weight."""
        votes = [
            make_vote("A", "x", 0.99, weight=5.0),
            make_vote("B", "y", 0.3),
            make_vote("C", "y", 0.3),
            make_vote("D", "z", 0.9),
        ]

        result = aggregator.aggregate(votes, algorithm="plurality")

        assert result.intent == "y"
        assert result.confidence == pytest.approx(0.5)
        assert result.method == "plurality"
        assert result.agreement_level == AgreementLevel.PLURALITY

    def test_plurality_tie_first_max(self, aggregator: VoteAggregator) -> None:
        """Plurality ties go to the first intent seen."""
        votes = [make_vote("A", "x"), make_vote("B", "y"), make_vote("C", "z")]

        result = aggregator.aggregate(votes, algorithm=ConsensusAlgorithm.PLURALITY)

        assert result.intent == "x"
        assert result.confidence == pytest.approx(1 / 3)
        assert result.agreement_level == AgreementLevel.SPLIT

    def test_confidence_weighted_ignores_weights(self, aggregator: VoteAggregator) -> None:
        """Confidence-weighted scores every voter with weight 1."""
        votes = [make_vote("A", "x", 0.6, weight=3.0), make_vote("B", "y", 0.7)]

        assert aggregator.aggregate(votes, algorithm="weighted-majority").intent == "x"
        assert aggregator.aggregate(votes, algorithm="confidence-weighted").intent == "y"

    def test_confidence_weighted_is_never_boosted(self, aggregator: VoteAggregator) -> None:
        """Confidence-weighted reports the raw share even above the threshold."""
        votes = [make_vote("A", "x", 0.9), make_vote("B", "x", 0.8), make_vote("C", "y", 0.5)]

        result = aggregator.aggregate(votes, algorithm="confidence-weighted")
        boosted = aggregator.aggregate(votes, algorithm="weighted-majority")

        assert result.confidence == pytest.approx(1.7 / 2.2)
        assert result.metrics["boost_applied"] is False
        assert "(boosted)" not in result.reasoning_text
        assert boosted.confidence == pytest.approx(1.7 / 2.2 + 0.1)

    def test_borda_count_ignores_confidence(self, aggregator: VoteAggregator) -> None:
        """Borda accumulates weight only."""
        votes = [
            make_vote("A", "x", 0.1, weight=1.0),
            make_vote("B", "y", 0.99, weight=0.5),
            make_vote("C", "y", 0.99, weight=0.4),
        ]

        result = aggregator.aggregate(votes, algorithm="borda-count")

        assert result.intent == "x"
        assert result.confidence == pytest.approx(1.0 / 1.9)
        assert aggregator.aggregate(votes).intent == "y"

    def test_condorcet_runs_as_weighted_majority(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        """Condorcet is an alias and reports the algorithm actually applied."""
        result = aggregator.aggregate(light_votes, algorithm="condorcet")

        assert result.method == "weighted-majority"
        assert result.metrics["requested_algorithm"] == "condorcet"
        assert any("runs as 'weighted-majority'" in line for line in result.reasoning)

    def test_approval_voting_runs_as_plurality(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        """Approval voting is an alias of plurality."""
        result = aggregator.aggregate(light_votes, algorithm="approval-voting")

        assert result.method == "plurality"
        assert result.confidence == pytest.approx(2 / 3)

    def test_unknown_algorithm_falls_back(
        self, aggregator: VoteAggregator, light_votes: list[Vote], caplog
    ) -> None:
        """Unknown names fall back to weighted-majority with a warning."""
        result = aggregator.aggregate(light_votes, algorithm="ranked-choice")

        assert result.method == "weighted-majority"
        assert result.metrics["algorithm_fallback"] is True
        assert "Unknown consensus algorithm" in caplog.text

    def test_algorithm_from_config(self, light_votes: list[Vote]) -> None:
        """The instance config selects the algorithm when none is passed."""
        aggregator = VoteAggregator(ConsensusConfig(algorithm="plurality"))

        assert aggregator.aggregate(light_votes).method == "plurality"

    @pytest.mark.parametrize("algorithm", [a.value for a in ConsensusAlgorithm])
    def test_confidence_within_bounds(
        self, aggregator: VoteAggregator, light_votes: list[Vote], algorithm: str
    ) -> None:
        """Every algorithm reports confidence in [0, 1] and counts valid votes."""
        result = aggregator.aggregate(light_votes, algorithm=algorithm)

        assert 0.0 <= result.confidence <= 1.0
        assert result.participating_votes == 3


class TestQuorumAndValidation:
    """Tests for vote filtering and quorum failures."""

    def test_invalid_votes_are_discarded(self, aggregator: VoteAggregator) -> None:
        """Blank intents, missing or negative confidences and None entries do not count."""
        votes = [
            make_vote("A", "x", 0.9),
            make_vote("B", "x", 0.7),
            make_vote("C", "   ", 0.9),
            make_vote("D", None, 0.9),
            make_vote("E", "y", None),
            make_vote("F", "y", -0.1),
            None,
        ]

        result = aggregator.aggregate(votes)

        assert result.participating_votes == 2
        assert result.total_votes == 7
        assert result.intent == "x"
        assert result.agreement_level == AgreementLevel.UNANIMOUS

    def test_discarded_votes_marked_in_reasoning(self, aggregator: VoteAggregator) -> None:
        """Invalid votes appear in the audit trail as discarded."""
        votes = [make_vote("A", "x"), make_vote("B", "x"), make_vote("C", "y", None)]

        result = aggregator.aggregate(votes)

        assert any(line.startswith("- C:") and "[discarded]" in line for line in result.reasoning)

    def test_quorum_miss_returns_failed(self, aggregator: VoteAggregator) -> None:
        """Fewer valid votes than required gives a FAILED decision."""
        votes = [make_vote("A", "x", 0.9), make_vote("B", "", 0.9)]

        result = aggregator.aggregate(votes, min_votes=2)

        assert result.is_failed
        assert result.agreement_level == AgreementLevel.FAILED
        assert result.intent == "unknown"
        assert result.confidence == 0.0
        assert result.participating_votes == 0
        assert result.total_votes == 2
        assert result.method == "failed"
        assert "Insufficient valid votes" in result.reasoning_text

    def test_empty_batch_fails_with_default_quorum(self, aggregator: VoteAggregator) -> None:
        """No votes at all misses the default quorum of two."""
        result = aggregator.aggregate([])

        assert result.is_failed
        assert result.total_votes == 0

    def test_single_vote_with_quorum_of_one(self, aggregator: VoteAggregator) -> None:
        """A single valid vote is enough when min_votes is 1."""
        result = aggregator.aggregate([make_vote("A", "x", 0.4)], min_votes=1)

        assert not result.is_failed
        assert result.intent == "x"
        assert result.agreement_level == AgreementLevel.UNANIMOUS

    def test_none_batch_raises(self, aggregator: VoteAggregator) -> None:
        """A None batch is a programming error."""
        with pytest.raises(InvalidBatchError):
            aggregator.aggregate(None)

    def test_negative_min_votes_raises(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        """A negative quorum is a programming error."""
        with pytest.raises(InvalidBatchError):
            aggregator.aggregate(light_votes, min_votes=-1)

    def test_internal_fault_returns_failed(
        self, aggregator: VoteAggregator, light_votes: list[Vote], monkeypatch
    ) -> None:
        """Unexpected errors are converted into a FAILED decision."""

        def boom(_votes):
            raise RuntimeError("classifier exploded")

        monkeypatch.setattr(aggregator, "classify_agreement", boom)

        result = aggregator.aggregate(light_votes)

        assert result.is_failed
        assert result.total_votes == 3
        assert any("classifier exploded" in line for line in result.reasoning)


class TestAgreementLevels:
    """Tests for agreement classification."""

    @pytest.mark.parametrize(
        "intents,expected",
        [
            (["x", "x", "x"], AgreementLevel.UNANIMOUS),
            (["x", "x", "y"], AgreementLevel.MAJORITY),
            (["x", "x", "y", "y"], AgreementLevel.PLURALITY),
            (["x", "x", "y", "z", "w"], AgreementLevel.PLURALITY),
            (["x", "y", "z"], AgreementLevel.SPLIT),
            (["x", "y"], AgreementLevel.SPLIT),
        ],
    )
    def test_classification(
        self, aggregator: VoteAggregator, intents: list[str], expected: AgreementLevel
    ) -> None:
        votes = [make_vote(str(i), intent) for i, intent in enumerate(intents)]

        assert aggregator.classify_agreement(votes) == expected


class TestMerging:
    """Tests for entity merging and subtask consolidation."""

    def test_entities_keep_unanimous_value(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        """Most frequent entity value wins."""
        result = aggregator.aggregate(light_votes)

        assert result.entities == {"lugar": "salon"}

    def test_entity_tie_goes_to_first_value(self, aggregator: VoteAggregator) -> None:
        """Equal counts keep the value seen first."""
        votes = [
            make_vote("A", "x", entities={"lugar": "cocina", "hora": "07:00"}),
            make_vote("B", "x", entities={"lugar": "salon"}),
        ]

        result = aggregator.aggregate(votes)

        assert result.entities == {"lugar": "cocina", "hora": "07:00"}
        assert list(result.entities) == ["lugar", "hora"]

    def test_unhashable_entity_values(self, aggregator: VoteAggregator) -> None:
        """List and dict entity values are compared by equality."""
        votes = [
            make_vote("A", "x", entities={"luces": ["salon", "cocina"]}),
            make_vote("B", "x", entities={"luces": ["salon"]}),
            make_vote("C", "x", entities={"luces": ["salon"]}),
        ]

        result = aggregator.aggregate(votes)

        assert result.entities == {"luces": ["salon"]}

    def test_subtasks_are_deduplicated(self, aggregator: VoteAggregator) -> None:
        """Structurally equal subtasks collapse to the first occurrence."""
        votes = [
            make_vote("A", "x", subtasks=[{"action": "encender_luz", "entities": {"lugar": "salon"}}]),
            make_vote(
                "B",
                "x",
                subtasks=[
                    {"action": "encender_luz", "entities": {"lugar": "salon"}},
                    {"action": "consultar_tiempo"},
                ],
            ),
        ]

        result = aggregator.aggregate(votes)

        assert result.subtasks == [
            {"action": "encender_luz", "entities": {"lugar": "salon"}},
            {"action": "consultar_tiempo"},
        ]

    def test_subtasks_from_invalid_votes_ignored(self, aggregator: VoteAggregator) -> None:
        """Only valid votes contribute subtasks."""
        votes = [
            make_vote("A", "x", subtasks=[{"action": "a"}]),
            make_vote("B", "x"),
            make_vote("C", "x", confidence=None, subtasks=[{"action": "b"}]),
        ]

        result = aggregator.aggregate(votes)

        assert result.subtasks == [{"action": "a"}]

    def test_merging_disabled(self, light_votes: list[Vote]) -> None:
        """Disabled merging leaves entities and subtasks empty."""
        aggregator = VoteAggregator(
            ConsensusConfig(enable_entity_merging=False, enable_subtask_consolidation=False)
        )

        result = aggregator.aggregate(light_votes)

        assert result.entities == {}
        assert result.subtasks == []


class TestReasoningAndMetrics:
    """Tests for the audit trail and metrics map."""

    def test_reasoning_lists_every_voter(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        result = aggregator.aggregate(light_votes)

        assert "- A: encender_luz (confidence: 0.90, weight: 1.00)" in result.reasoning
        assert "- C: apagar_luz (confidence: 0.95, weight: 0.90)" in result.reasoning
        assert result.reasoning[0] == "Consensus reached using algorithm 'weighted-majority'"

    def test_metrics_snapshot(self, aggregator: VoteAggregator, light_votes: list[Vote]) -> None:
        result = aggregator.aggregate(light_votes)

        assert result.metrics["average_confidence"] == pytest.approx((0.9 + 0.8 + 0.95) / 3)
        assert result.metrics["valid_votes"] == 3
        assert result.metrics["confidence_threshold"] == 0.6

    def test_round_id_in_decision_id(
        self, aggregator: VoteAggregator, light_votes: list[Vote]
    ) -> None:
        result = aggregator.aggregate(light_votes, round_id="round-7")

        assert result.decision_id.startswith("consensus-round-7-")

    def test_describe_reports_config(self, aggregator: VoteAggregator) -> None:
        described = aggregator.describe()

        assert described["algorithm"] == "weighted-majority"
        assert described["min_votes"] == 2
