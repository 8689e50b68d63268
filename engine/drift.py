from dataclasses import dataclass
from typing import Sequence, TypeVar

import polars as pl

from data.models import DriftResult, PeriodMetrics, StabilityLabel
from engine.metrics import metrics_by_period, round_half_up
from narrative.summary import build_executive_summary

T = TypeVar("T")

SERVICE_MIX_DRIVER = "Service mix shifted (procedure pattern change detected)."
INTENSITY_DRIVER = "Service intensity proxy shifted (allowed amount pattern changed)."
POS_DRIVER = "Care setting distribution shifted (Place of Service mix changed)."
NO_DRIVER = "No major drift drivers detected across the selected window."


@dataclass(frozen=True)
class DriftConfig:
    """Weights and thresholds for the drift score."""
    # Service mix = entropy change and top-service share change
    entropy_weight: float = 0.60
    top_share_weight: float = 0.40
    # Composite drift score
    service_mix_weight: float = 0.40
    intensity_weight: float = 0.35
    pos_weight: float = 0.25
    # An axis at or above this drift (0-100) is reported as a driver
    driver_threshold: int = 25
    # Stability index cut-offs
    stable_threshold: int = 80
    watch_threshold: int = 60
    high_intensity_percentile: float = 75


DEFAULT_CONFIG = DriftConfig()


def split_periods(items: Sequence[T]) -> tuple[list[T], list[T]]:
    """Split an ordered sequence into a baseline prefix and a recent suffix.

    Splits at max(1, n // 2), so a single period leaves the recent window empty.
    """
    mid = max(1, len(items) // 2)
    return list(items[:mid]), list(items[mid:])


def window_average(window: Sequence[PeriodMetrics], field: str) -> float:
    if not window:
        return 0.0
    return sum(getattr(m, field) for m in window) / len(window)


def relative_change(baseline: float, recent: float) -> float:
    """Direction-agnostic relative change, capped at 1.0."""
    if baseline == 0:
        return 0.0
    return min(1.0, abs(recent - baseline) / baseline)


def signed_change_pct(baseline: float, recent: float) -> float:
    if baseline == 0:
        return 0.0
    return (recent - baseline) / baseline * 100


def stability_label(stability_index: int, config: DriftConfig = DEFAULT_CONFIG) -> StabilityLabel:
    if stability_index >= config.stable_threshold:
        return StabilityLabel.STABLE
    if stability_index >= config.watch_threshold:
        return StabilityLabel.WATCH
    return StabilityLabel.DRIFT_RISK


def drift_drivers(service_mix_drift: int, intensity_drift: int, pos_drift: int,
                  config: DriftConfig = DEFAULT_CONFIG) -> list[str]:
    """Describe which axes moved enough to matter, in a fixed order."""
    drivers = []
    if service_mix_drift >= config.driver_threshold:
        drivers.append(SERVICE_MIX_DRIVER)
    if intensity_drift >= config.driver_threshold:
        drivers.append(INTENSITY_DRIVER)
    if pos_drift >= config.driver_threshold:
        drivers.append(POS_DRIVER)
    if not drivers:
        drivers.append(NO_DRIVER)
    return drivers


def list_providers(claims: pl.DataFrame) -> list[str]:
    """Distinct provider IDs, sorted ascending."""
    return sorted(claims["provider_id"].unique().to_list())


def compute_drift(claims: pl.DataFrame, provider_id: str,
                  config: DriftConfig = DEFAULT_CONFIG) -> DriftResult:
    """Compare a provider's baseline and recent windows.

    A provider with no rows gets a zeroed result (no periods, stability 100)
    rather than an exception; callers that need "not found" check ``periods``.
    """
    lines = claims.filter(pl.col("provider_id") == provider_id)
    metrics = metrics_by_period(lines, config.high_intensity_percentile)
    periods = tuple(m.period for m in metrics)

    baseline, recent = split_periods(metrics)

    base_entropy = window_average(baseline, "service_entropy")
    rec_entropy = window_average(recent, "service_entropy")
    base_top_share = window_average(baseline, "top_service_share")
    rec_top_share = window_average(recent, "top_service_share")
    base_allowed = window_average(baseline, "weighted_allowed_mean")
    rec_allowed = window_average(recent, "weighted_allowed_mean")
    base_pos_entropy = window_average(baseline, "pos_entropy")
    rec_pos_entropy = window_average(recent, "pos_entropy")

    # Fractional (0-1) drift per axis; the composite uses these unrounded
    service_mix = (
        config.entropy_weight * relative_change(base_entropy, rec_entropy)
        + config.top_share_weight * relative_change(base_top_share, rec_top_share)
    )
    intensity = relative_change(base_allowed, rec_allowed)
    pos = relative_change(base_pos_entropy, rec_pos_entropy)

    service_mix_drift = round_half_up(service_mix * 100)
    intensity_drift = round_half_up(intensity * 100)
    pos_drift = round_half_up(pos * 100)

    composite = (
        config.service_mix_weight * service_mix
        + config.intensity_weight * intensity
        + config.pos_weight * pos
    )
    drift_score = round_half_up(composite * 100)
    stability_index = max(0, 100 - drift_score)
    label = stability_label(stability_index, config)

    first = metrics[0] if metrics else None
    last = metrics[-1] if metrics else None
    summary = build_executive_summary(
        label=label,
        periods=periods,
        first=first,
        last=last,
        entropy_change_pct=signed_change_pct(base_entropy, rec_entropy),
        intensity_change_pct=signed_change_pct(base_allowed, rec_allowed),
    )

    return DriftResult(
        provider_id=provider_id,
        periods=periods,
        metrics_by_period=tuple(metrics),
        service_mix_drift=service_mix_drift,
        intensity_drift=intensity_drift,
        pos_drift=pos_drift,
        drift_score=drift_score,
        stability_index=stability_index,
        label=label,
        executive_summary=summary,
        drivers=tuple(drift_drivers(service_mix_drift, intensity_drift, pos_drift, config)),
    )


def scan_providers(claims: pl.DataFrame, config: DriftConfig = DEFAULT_CONFIG) -> list[DriftResult]:
    """Compute drift for every provider, highest drift first."""
    results = [compute_drift(claims, pid, config) for pid in list_providers(claims)]
    results.sort(key=lambda r: (-r.drift_score, r.provider_id))
    return results
