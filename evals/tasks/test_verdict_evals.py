"""
Verdict Evals -- label parsing and the majority aggregator.

CODE-BASED graders: the aggregator is pure, so every case is exact.
"""

from itertools import permutations

import pytest

from magi.llm.errors import MalformedUpstreamResponse
from magi.orchestration import Decision, Outcome, Tally, Verdict, aggregate, tally

A, D, E = Decision.APPROVE, Decision.DENY, Decision.ERROR


class TestAggregation:
    """Eval: Is the collective outcome the strict majority of APPROVE vs DENY?"""

    @pytest.mark.parametrize(
        "decisions, expected",
        [
            ([A, A, D], Outcome.APPROVED),
            ([A, D, D], Outcome.DENIED),
            ([A, D, E], Outcome.PENDING),
            ([E, E, E], Outcome.PENDING),
            ([], Outcome.PENDING),
            ([A, E, E], Outcome.APPROVED),
            ([D, E], Outcome.DENIED),
            ([A, A, D, D], Outcome.PENDING),
        ],
    )
    def test_examples(self, decisions, expected):
        assert aggregate(decisions) == expected

    def test_order_independent(self):
        for decisions in ([A, A, D], [A, D, E], [D, D, A, E], [E, A, D, D, A]):
            expected = aggregate(decisions)
            for ordering in permutations(decisions):
                assert aggregate(ordering) == expected

    def test_error_counts_for_neither_side(self):
        assert tally([A, E, D, E]) == Tally(approve=1, deny=1, error=2)

    def test_raw_labels_are_parsed(self):
        assert aggregate(["承認", "否定", "APPROVE"]) == Outcome.APPROVED


class TestDecisionParsing:
    """Eval: Are model-produced labels normalized without guessing?"""

    @pytest.mark.parametrize("label", ["APPROVE", "approve", "Approved.", "yes", "承認", "承認 (GRANTED)", "可決（GRANTED）"])
    def test_approve_labels(self, label):
        assert Decision.parse(label) is Decision.APPROVE

    @pytest.mark.parametrize("label", ["DENY", "denied", "Reject", "no", "否定", "否決"])
    def test_deny_labels(self, label):
        assert Decision.parse(label) is Decision.DENY

    @pytest.mark.parametrize("label", ["maybe", "", "   ", None, 1, "abstain"])
    def test_unknown_labels_are_errors(self, label):
        assert Decision.parse(label) is Decision.ERROR

    @pytest.mark.parametrize("label", ["承認しない", "否定的", "not approved", "yesterday"])
    def test_negated_or_longer_words_are_not_labels(self, label):
        assert Decision.parse(label) is Decision.ERROR


class TestVerdictFromResponse:
    def test_decision_and_reason(self):
        verdict = Verdict.from_response({"decision": "DENY", "reason": "Too risky"})
        assert verdict == Verdict(Decision.DENY, "Too risky")
        assert verdict.to_dict() == {"decision": "DENY", "reason": "Too risky"}

    def test_missing_reason_defaults_to_empty(self):
        assert Verdict.from_response({"decision": "APPROVE"}).reason == ""

    def test_missing_decision_is_malformed(self):
        with pytest.raises(MalformedUpstreamResponse):
            Verdict.from_response({"reason": "no decision here"})
