import pytest

from modbot.datatypes.errors import ValidationError
from modbot.datatypes.moderation_datatypes import DEFAULT_THRESHOLDS, TOXICITY_ATTRIBUTES
from modbot.moderation.score_normalizer import ScoreNormalizer


def raw(**scores):
    return {name: {"value": value} for name, value in scores.items()}


def test_missing_attributes_score_zero():
    assessment = ScoreNormalizer().normalize(raw(toxicity=0.2))

    assert set(assessment.scores) == set(TOXICITY_ATTRIBUTES)
    assert assessment.scores["threat"] == 0.0
    assert assessment.max_score == pytest.approx(0.2)
    assert not assessment.is_toxic
    assert assessment.degraded is False


def test_all_scores_below_threshold_is_safe():
    assessment = ScoreNormalizer().normalize(
        raw(toxicity=0.69, severe_toxicity=0.79, identity_attack=0.1, insult=0.7, profanity=0.0, threat=0.5)
    )

    # 0.7 is not strictly above the 0.7 threshold
    assert assessment.violated_attributes == frozenset()
    assert assessment.reason == "Content is safe"


def test_violated_set_matches_scores_above_threshold():
    assessment = ScoreNormalizer().normalize(raw(toxicity=0.95, severe_toxicity=0.1, insult=0.2))

    assert assessment.violated_attributes == frozenset({"toxicity"})
    assert assessment.violations == ["toxicity"]
    assert assessment.max_score == pytest.approx(0.95)
    assert assessment.confidence == 95
    assert assessment.reason == "Violated: toxicity"


def test_absent_scores_are_degraded():
    assessment = ScoreNormalizer().normalize(None)

    assert assessment.degraded is True
    assert assessment.max_score == 0.0
    assert not assessment.is_toxic
    assert all(score == 0.0 for score in assessment.scores.values())


def test_empty_scores_give_zero_max():
    assessment = ScoreNormalizer().normalize({})

    assert assessment.max_score == 0.0
    assert assessment.degraded is False


def test_normalize_is_pure():
    normalizer = ScoreNormalizer()
    scores = raw(toxicity=0.81, insult=0.75)

    assert normalizer.normalize(scores) == normalizer.normalize(scores)


def test_increasing_a_score_never_removes_violations():
    normalizer = ScoreNormalizer()
    base = {"toxicity": 0.5, "insult": 0.75, "threat": 0.3}
    before = normalizer.normalize(base)

    for name in base:
        for bump in (0.05, 0.2, 0.5):
            raised = dict(base, **{name: min(1.0, base[name] + bump)})
            after = normalizer.normalize(raised)
            assert after.max_score >= before.max_score
            assert before.violated_attributes <= after.violated_attributes


def test_per_call_overrides_accept_camel_case_and_ignore_unknown_keys():
    normalizer = ScoreNormalizer()
    assessment = normalizer.normalize(
        raw(severe_toxicity=0.5, toxicity=0.5),
        {"severeToxicity": 0.4, "TOXICITY": 0.6, "spam": 0.1},
    )

    assert assessment.thresholds["severe_toxicity"] == pytest.approx(0.4)
    assert assessment.thresholds["toxicity"] == pytest.approx(0.6)
    assert "spam" not in assessment.thresholds
    assert assessment.violated_attributes == frozenset({"severe_toxicity"})


def test_zero_threshold_flags_any_positive_score():
    assessment = ScoreNormalizer().normalize(raw(threat=0.01), {"threat": 0})

    assert assessment.violated_attributes == frozenset({"threat"})


@pytest.mark.parametrize("value", [1.5, -0.1, "high", True])
def test_invalid_threshold_override_raises(value):
    with pytest.raises(ValidationError):
        ScoreNormalizer().normalize(raw(toxicity=0.5), {"toxicity": value})


def test_malformed_scores_raise():
    normalizer = ScoreNormalizer()

    with pytest.raises(ValidationError):
        normalizer.normalize(["toxicity", 0.9])
    with pytest.raises(ValidationError):
        normalizer.normalize({"toxicity": {"value": "very"}})


def test_out_of_range_scores_are_clamped():
    assessment = ScoreNormalizer().normalize({"toxicity": 1.4, "insult": -0.2})

    assert assessment.scores["toxicity"] == 1.0
    assert assessment.scores["insult"] == 0.0


def test_upper_case_classifier_keys_are_recognised():
    assessment = ScoreNormalizer().normalize({"SEVERE_TOXICITY": {"value": 0.85}})

    assert assessment.violated_attributes == frozenset({"severe_toxicity"})


def test_global_defaults_and_reassess():
    normalizer = ScoreNormalizer({"toxicity": 0.5})
    assert normalizer.default_thresholds["toxicity"] == 0.5
    assert normalizer.default_thresholds["insult"] == DEFAULT_THRESHOLDS["insult"]

    assessment = normalizer.normalize(raw(toxicity=0.6))
    assert assessment.is_toxic

    stricter = normalizer.reassess(assessment, {"toxicity": 0.9})
    assert not stricter.is_toxic
    assert stricter.scores == assessment.scores

    assert normalizer.reassess(assessment) is assessment
