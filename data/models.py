from dataclasses import asdict, dataclass
from enum import Enum


class StabilityLabel(Enum):
    STABLE = "Stable"
    WATCH = "Watch"
    DRIFT_RISK = "DriftRisk"


@dataclass(frozen=True)
class ClaimLine:
    """A single provider/service/place-of-service line for one period."""
    provider_id: str
    period: int
    service_code: str
    place_of_service: str
    service_count: float  # weight, >= 0
    allowed_amount: float  # average allowed amount per service


@dataclass(frozen=True)
class PeriodMetrics:
    """Service mix, intensity and care-setting metrics for one period."""
    period: int
    service_entropy: float
    top_service_code: str
    top_service_share: float  # 0.0 to 1.0
    weighted_allowed_mean: float
    high_intensity_share: float  # 0.0 to 1.0
    pos_entropy: float
    top_pos: str
    top_pos_share: float  # 0.0 to 1.0


@dataclass(frozen=True)
class DriftResult:
    """Drift between a provider's baseline and recent windows."""
    provider_id: str
    periods: tuple[int, ...] = ()
    metrics_by_period: tuple[PeriodMetrics, ...] = ()
    service_mix_drift: int = 0
    intensity_drift: int = 0
    pos_drift: int = 0
    drift_score: int = 0
    stability_index: int = 100
    label: StabilityLabel = StabilityLabel.STABLE
    executive_summary: str = ""
    drivers: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        record = asdict(self)
        record["label"] = self.label.value
        for key in ("periods", "metrics_by_period", "drivers"):
            record[key] = list(record[key])
        return record


@dataclass(frozen=True)
class Brief:
    """An executive brief and where its text came from."""
    text: str
    source: str  # "ai" or "fallback"
    warning: str = ""
