"""Tests for data models."""

import dataclasses
import json

import pytest

from data.models import Brief, ClaimLine, DriftResult, PeriodMetrics, StabilityLabel


def _metrics(period: int = 2019) -> PeriodMetrics:
    return PeriodMetrics(
        period=period,
        service_entropy=1.0,
        top_service_code="99213",
        top_service_share=0.5,
        weighted_allowed_mean=120.0,
        high_intensity_share=0.25,
        pos_entropy=0.0,
        top_pos="O",
        top_pos_share=1.0,
    )


def test_stability_label_values():
    assert StabilityLabel.STABLE.value == "Stable"
    assert StabilityLabel.WATCH.value == "Watch"
    assert StabilityLabel.DRIFT_RISK.value == "DriftRisk"
    assert len(StabilityLabel) == 3


def test_claim_line_is_immutable():
    line = ClaimLine("123", 2019, "99213", "O", 10, 75.0)
    with pytest.raises(dataclasses.FrozenInstanceError):
        line.service_count = 20


def test_drift_result_defaults():
    r = DriftResult(provider_id="123")
    assert r.periods == ()
    assert r.metrics_by_period == ()
    assert r.drift_score == 0
    assert r.stability_index == 100
    assert r.label is StabilityLabel.STABLE


def test_drift_result_to_dict_is_json_ready():
    r = DriftResult(
        provider_id="123",
        periods=(2019, 2020),
        metrics_by_period=(_metrics(2019), _metrics(2020)),
        drift_score=45,
        stability_index=55,
        label=StabilityLabel.DRIFT_RISK,
        executive_summary="Summary.",
        drivers=("Something shifted.",),
    )
    record = r.to_dict()
    assert record["label"] == "DriftRisk"
    assert record["metrics_by_period"][1]["period"] == 2020
    assert set(record) == {
        "provider_id", "periods", "metrics_by_period", "service_mix_drift",
        "intensity_drift", "pos_drift", "drift_score", "stability_index",
        "label", "executive_summary", "drivers",
    }
    # Round-trips through JSON without custom encoders
    assert json.loads(json.dumps(record)) == record


def test_brief_defaults():
    b = Brief(text="Brief.", source="fallback")
    assert b.warning == ""


def test_drift_result_collections_are_immutable():
    r = DriftResult(provider_id="123", periods=(2019, 2020), drivers=("Something shifted.",))
    with pytest.raises(AttributeError):
        r.periods.append(2021)
    with pytest.raises(AttributeError):
        r.drivers.append("Another.")
    assert r.to_dict()["periods"] == [2019, 2020]
