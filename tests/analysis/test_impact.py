"""Tests for impact prediction."""
from __future__ import annotations

import pytest

from orghealth.analysis.impact import predict_impact, predicted_uplift, prediction_confidence
from orghealth.analysis.scoring import score_theme
from orghealth.models import EffortLevel, Intervention, Priority, RootCause


def _intervention(iid, theme_id, impact, refs):
    return Intervention(
        id=iid,
        title=iid,
        theme_ids=(theme_id,),
        root_cause_ids=tuple(refs),
        estimated_impact=impact,
        effort_level=EffortLevel.MEDIUM,
        priority=Priority.MEDIUM,
        quick_win=False,
        timeline="2 weeks",
    )


def _cause(cause_id, theme_id, impact):
    return RootCause(
        id=cause_id,
        theme_id=theme_id,
        cause=cause_id,
        frequency=1,
        impact_score=impact,
        affected_employees=1,
    )


@pytest.fixture()
def stats():
    return {
        "wlb": score_theme("wlb", [0.2, 0.3, 0.4, 0.2]),
        "career": score_theme("career", [0.5, 0.6]),
        "quiet": score_theme("quiet", [0.9, 0.8]),
    }


def test_uplift_has_diminishing_returns():
    assert predicted_uplift([]) == 0
    assert predicted_uplift([10]) == 10
    assert predicted_uplift([10, 20]) == pytest.approx(25.0)
    assert predicted_uplift([20, 10, 8]) == pytest.approx(27.0)


def test_predictions_per_targeted_theme(stats):
    causes = [_cause("wlb-rc-1", "wlb", 60), _cause("career-rc-1", "career", 30)]
    interventions = [
        _intervention("wlb-iv-1", "wlb", 15, ["wlb-rc-1"]),
        _intervention("wlb-iv-2", "wlb", 10, ["wlb-rc-1"]),
        _intervention("career-iv-1", "career", 5, ["career-rc-1"]),
    ]

    predictions = predict_impact(stats, interventions, causes, {"wlb": 80, "career": 80})

    assert [p.theme_id for p in predictions] == ["wlb", "career"]
    wlb = predictions[0]
    assert wlb.current_sentiment == pytest.approx(stats["wlb"].current_sentiment)
    assert wlb.improvement == pytest.approx(20.0)
    assert wlb.intervention_ids == ("wlb-iv-1", "wlb-iv-2")
    assert all(0 <= p.confidence <= 100 for p in predictions)


def test_prediction_capped_at_100():
    stats = {"happy": score_theme("happy", [0.95, 0.9])}
    interventions = [_intervention("happy-iv-1", "happy", 20, [])]

    prediction = predict_impact(stats, interventions, [], {})[0]

    assert prediction.predicted_sentiment == 100.0


def test_untargeted_theme_has_no_prediction(stats):
    interventions = [_intervention("wlb-iv-1", "wlb", 15, [])]

    predictions = predict_impact(stats, interventions, [], {})

    assert [p.theme_id for p in predictions] == ["wlb"]


@pytest.mark.parametrize("high,low", [(100, 75), (75, 40), (40, 0), (60, 59)])
def test_lower_sample_confidence_never_raises_prediction_confidence(stats, high, low):
    causes = [_cause("wlb-rc-1", "wlb", 60)]
    interventions = [_intervention("wlb-iv-1", "wlb", 15, ["wlb-rc-1"])]

    hi = predict_impact(stats, interventions, causes, {"wlb": high})[0]
    lo = predict_impact(stats, interventions, causes, {"wlb": low})[0]

    assert lo.confidence <= hi.confidence


def test_confidence_grows_with_corroboration_and_agreement():
    assert prediction_confidence(3, 50, [40, 40]) > prediction_confidence(1, 50, [40, 40])
    assert prediction_confidence(2, 50, [40, 42]) > prediction_confidence(2, 50, [10, 90])
    assert prediction_confidence(3, 100, []) == 100
    assert prediction_confidence(0, 0, [0, 100]) == 0
