"""Tests for the deterministic executive summary."""

from data.models import PeriodMetrics, StabilityLabel
from engine.drift import compute_drift
from narrative.summary import LIMITATION_SENTENCE, build_executive_summary, period_span
from tests.conftest import SHIFTED_ID, STABLE_ID


def _metrics(period, top_share, pos_share, code="99213", pos="O") -> PeriodMetrics:
    return PeriodMetrics(
        period=period, service_entropy=1.0, top_service_code=code,
        top_service_share=top_share, weighted_allowed_mean=100.0,
        high_intensity_share=0.0, pos_entropy=1.0, top_pos=pos, top_pos_share=pos_share,
    )


def test_period_span():
    assert period_span([2020, 2018, 2019]) == "2018-2020"
    assert period_span([]) == "selected periods"


def test_summary_sentences_in_order():
    text = build_executive_summary(
        label=StabilityLabel.WATCH,
        periods=[2019, 2020],
        first=_metrics(2019, 0.8, 0.9, code="A0001"),
        last=_metrics(2020, 0.5, 0.6, code="B0002", pos="F"),
        entropy_change_pct=38.5,
        intensity_change_pct=-12.4,
    )
    assert text.startswith("Clinical Pattern Stability: Watch (2019-2020).")
    assert "Service mix shifted (less concentrated): top service (B0002) changed from 80% to 50%." in text
    assert "Decision diversity changed by 39% (more diverse)." in text
    assert "Intensity proxy decreased by 12% (weighted allowed amount pattern)." in text
    assert "Care setting shifted: top Place of Service (F) moved from 90% to 60%." in text
    assert text.endswith(LIMITATION_SENTENCE)
    assert text.index("Service mix") < text.index("Decision diversity") < text.index("Intensity proxy")


def test_summary_directions():
    text = build_executive_summary(
        label=StabilityLabel.STABLE,
        periods=[2019, 2020],
        first=_metrics(2019, 0.4, 0.5),
        last=_metrics(2020, 0.6, 0.5),
        entropy_change_pct=-5.0,
        intensity_change_pct=0.0,
    )
    assert "(more concentrated)" in text
    assert "(more narrow)" in text
    assert "Intensity proxy stayed stable by 0%" in text


def test_summary_without_periods():
    text = build_executive_summary(
        label=StabilityLabel.STABLE, periods=[], first=None, last=None,
        entropy_change_pct=0.0, intensity_change_pct=0.0,
    )
    assert "(selected periods)" in text
    assert "top service (N/A) changed from 0% to 0%" in text
    assert "(unchanged)" in text


def test_compute_drift_summary(claims):
    r = compute_drift(claims, SHIFTED_ID)
    assert r.executive_summary.startswith("Clinical Pattern Stability: Watch (2019-2020).")
    assert "top service (A0001) changed from 80% to 50%" in r.executive_summary
    # Weighted allowed mean 120 -> 150
    assert "Intensity proxy increased by 25%" in r.executive_summary


def test_stable_summary_reports_no_change(claims):
    r = compute_drift(claims, STABLE_ID)
    assert "Decision diversity changed by 0% (unchanged)." in r.executive_summary
