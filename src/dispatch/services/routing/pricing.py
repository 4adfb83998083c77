"""Peak-hour classification, carrying envelopes and the delivery cost function."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence
from zoneinfo import ZoneInfo

from ...config import Settings, settings
from ...models.domain import ItemMetrics, MachineType


@dataclass(slots=True, frozen=True)
class Tariff:
    base_fare: float
    rate_per_km: float


@dataclass(slots=True, frozen=True)
class Envelope:
    """Largest package a machine type can carry."""

    max_weight_kg: float
    max_dimension_cm: float

    def admits(self, item: ItemMetrics) -> bool:
        """Ground rule: nothing may exceed the limits."""
        return item.weight_kg <= self.max_weight_kg and all(
            size <= self.max_dimension_cm for size in item.dimensions
        )

    def admits_strictly(self, item: ItemMetrics) -> bool:
        """Aerial rule: weight and every dimension must stay below the limits."""
        return item.weight_kg < self.max_weight_kg and all(
            size < self.max_dimension_cm for size in item.dimensions
        )


def parse_peak_windows(windows: Sequence[str]) -> tuple[tuple[time, time], ...]:
    parsed = []
    for window in windows:
        start, _, end = window.partition("-")
        parsed.append((time.fromisoformat(start.strip()), time.fromisoformat(end.strip())))
    return tuple(parsed)


@dataclass(slots=True)
class PricingPolicy:
    """Tariffs, envelopes and peak windows for one deployment."""

    tariffs: dict[MachineType, Tariff]
    envelopes: dict[MachineType, Envelope]
    peak_windows: tuple[tuple[time, time], ...]
    peak_multiplier: float = 1.2
    timezone: str = "UTC"

    @classmethod
    def from_settings(cls, config: Settings | None = None) -> "PricingPolicy":
        config = config or settings
        return cls(
            tariffs={
                MachineType.DRONE: Tariff(config.drone_base_fare, config.drone_rate_per_km),
                MachineType.ROBOT: Tariff(config.robot_base_fare, config.robot_rate_per_km),
            },
            envelopes={
                MachineType.DRONE: Envelope(config.drone_max_weight_kg, config.drone_max_dimension_cm),
                MachineType.ROBOT: Envelope(config.robot_max_weight_kg, config.robot_max_dimension_cm),
            },
            peak_windows=parse_peak_windows(config.peak_windows),
            peak_multiplier=config.peak_multiplier,
            timezone=config.pricing_timezone,
        )

    def is_peak_hour(self, requested_time: datetime | None = None) -> bool:
        """Classify ``requested_time`` (or now) against the inclusive peak windows.

        Comparison happens at minute resolution, so 10:00:59 still counts as
        10:00. Naive datetimes are assumed to already be local; aware ones are
        converted into the pricing timezone first.
        """
        zone = timezone.utc if self.timezone.upper() == "UTC" else ZoneInfo(self.timezone)
        moment = requested_time or datetime.now(zone)
        if moment.tzinfo is not None:
            moment = moment.astimezone(zone)
        minute_of_day = moment.hour * 60 + moment.minute
        for start, end in self.peak_windows:
            if start.hour * 60 + start.minute <= minute_of_day <= end.hour * 60 + end.minute:
                return True
        return False

    def compute_cost(
        self,
        distance_meters: int,
        duration_seconds: int,
        machine_type: MachineType,
        peak: bool,
    ) -> float:
        """Price a delivery: base + rate per km, surcharged at peak, rounded half-up to cents.

        ``duration_seconds`` is accepted for callers that price by time; the
        current tariffs are distance based only.
        """
        if distance_meters < 0 or duration_seconds < 0:
            raise ValueError("Distance and duration must be non-negative.")
        tariff = self.tariffs[machine_type]
        km = Decimal(distance_meters) / Decimal(1000)
        price = Decimal(str(tariff.base_fare)) + Decimal(str(tariff.rate_per_km)) * km
        if peak:
            price *= Decimal(str(self.peak_multiplier))
        return float(price.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))

    def fits_aerial(self, item: ItemMetrics) -> bool:
        return self.envelopes[MachineType.DRONE].admits_strictly(item)

    def fits_ground(self, item: ItemMetrics) -> bool:
        return self.envelopes[MachineType.ROBOT].admits(item)
