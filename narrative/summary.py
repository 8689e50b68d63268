from typing import Sequence

from data.models import PeriodMetrics, StabilityLabel
from engine.metrics import NO_CATEGORY, round_half_up

LIMITATION_SENTENCE = (
    "This is a behavioral risk signal (pattern shift), not a judgment of clinical correctness."
)


def _pct(share: float) -> int:
    return round_half_up(share * 100)


def period_span(periods: Sequence[int]) -> str:
    if not periods:
        return "selected periods"
    return f"{min(periods)}-{max(periods)}"


def build_executive_summary(
    label: StabilityLabel,
    periods: Sequence[int],
    first: PeriodMetrics | None,
    last: PeriodMetrics | None,
    entropy_change_pct: float,
    intensity_change_pct: float,
) -> str:
    """Fill the fixed-order summary paragraph from a provider's drift facts.

    Share changes compare the literal first and last periods; the entropy and
    intensity changes compare baseline and recent window averages.
    """
    from_svc = first.top_service_share if first else 0.0
    to_svc = last.top_service_share if last else 0.0
    top_code = last.top_service_code if last else NO_CATEGORY
    from_pos = first.top_pos_share if first else 0.0
    to_pos = last.top_pos_share if last else 0.0
    top_pos = last.top_pos if last else NO_CATEGORY

    concentration = "more concentrated" if to_svc > from_svc else "less concentrated"

    if entropy_change_pct > 0:
        diversity = "more diverse"
    elif entropy_change_pct < 0:
        diversity = "more narrow"
    else:
        diversity = "unchanged"

    if intensity_change_pct > 0:
        intensity = "increased"
    elif intensity_change_pct < 0:
        intensity = "decreased"
    else:
        intensity = "stayed stable"

    return " ".join([
        f"Clinical Pattern Stability: {label.value} ({period_span(periods)}).",
        f"Service mix shifted ({concentration}): top service ({top_code}) changed "
        f"from {_pct(from_svc)}% to {_pct(to_svc)}%.",
        f"Decision diversity changed by {round_half_up(entropy_change_pct)}% ({diversity}).",
        f"Intensity proxy {intensity} by {round_half_up(abs(intensity_change_pct))}% "
        f"(weighted allowed amount pattern).",
        f"Care setting shifted: top Place of Service ({top_pos}) moved "
        f"from {_pct(from_pos)}% to {_pct(to_pos)}%.",
        LIMITATION_SENTENCE,
    ])
