"""Per-period service mix, intensity and care-setting metrics.

Every share and entropy here is weighted by ``service_count``, so a line
billed 40 times counts 40 times. A period with zero total weight reports 0
for all of them.
"""

import math

import polars as pl

from data.models import PeriodMetrics

NO_CATEGORY = "N/A"


def round_half_up(x: float) -> int:
    """Round .5 up instead of to the nearest even number."""
    return math.floor(x + 0.5)


def weighted_frequencies(lines: pl.DataFrame, key: str) -> dict[str, float]:
    """Sum service_count per distinct value of ``key``, ordered by key."""
    grouped = (
        lines.group_by(key)
        .agg(pl.col("service_count").sum().alias("weight"))
        .sort(key)
    )
    return dict(zip(grouped[key].to_list(), grouped["weight"].to_list()))


def entropy(freqs: dict[str, float]) -> float:
    """Shannon entropy in bits of a weighted frequency mapping."""
    total = sum(freqs.values())
    if total <= 0:
        return 0.0

    h = 0.0
    for weight in freqs.values():
        p = weight / total
        if p > 0:
            h -= p * math.log2(p)
    return h


def top_share(freqs: dict[str, float]) -> tuple[str, float]:
    """Return the heaviest category and its share of the total weight.

    Ties go to the lexicographically smallest key so results don't depend on
    row order.
    """
    total = sum(freqs.values())
    if total <= 0:
        return NO_CATEGORY, 0.0

    key, weight = min(freqs.items(), key=lambda kv: (-kv[1], kv[0]))
    return key, weight / total


def percentile(values: list[float], p: float) -> float:
    """Linear-index percentile: sorted[floor(p/100 * (n-1))], 0 for no values."""
    if not values:
        return 0.0
    ordered = sorted(values)
    idx = math.floor((p / 100) * (len(ordered) - 1))
    return ordered[idx]


def period_metrics(lines: pl.DataFrame, period: int, high_cost_threshold: float) -> PeriodMetrics:
    """Aggregate one period's lines for a single provider.

    ``high_cost_threshold`` comes from all of the provider's periods, so the
    high-intensity share says how much of this period's volume sits above
    the provider's own overall high-cost line.
    """
    svc_freqs = weighted_frequencies(lines, "service_code")
    pos_freqs = weighted_frequencies(lines, "place_of_service")
    top_code, top_code_share = top_share(svc_freqs)
    top_pos, top_pos_share = top_share(pos_freqs)

    total = lines["service_count"].sum()
    if total > 0:
        allowed_total = (lines["allowed_amount"] * lines["service_count"]).sum()
        high_total = lines.filter(
            pl.col("allowed_amount") >= high_cost_threshold
        )["service_count"].sum()
        weighted_allowed_mean = allowed_total / total
        high_intensity_share = high_total / total
    else:
        weighted_allowed_mean = 0.0
        high_intensity_share = 0.0

    return PeriodMetrics(
        period=period,
        service_entropy=entropy(svc_freqs),
        top_service_code=top_code,
        top_service_share=top_code_share,
        weighted_allowed_mean=weighted_allowed_mean,
        high_intensity_share=high_intensity_share,
        pos_entropy=entropy(pos_freqs),
        top_pos=top_pos,
        top_pos_share=top_pos_share,
    )


def metrics_by_period(lines: pl.DataFrame, high_cost_percentile: float = 75) -> list[PeriodMetrics]:
    """Compute PeriodMetrics for each distinct period of one provider, ascending."""
    threshold = percentile(lines["allowed_amount"].to_list(), high_cost_percentile)
    periods = sorted(lines["period"].unique().to_list())
    return [
        period_metrics(lines.filter(pl.col("period") == period), period, threshold)
        for period in periods
    ]
