"""
schedule_engines.compression -- Crashing and fast-tracking trade-off analysis.

Responsibility:
    Model the two schedule-compression techniques (crashing: buy time by
    adding cost to a task; fast-tracking: overlap a task with its
    successor at the risk of rework), evaluate a caller's selection of
    them into a CompressionResult, score the trade-off and recommend
    accept / review / reject.  Also offers a greedy planner that picks a
    selection for a target reduction.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Independent of the network; consumed by schedule_services.

Invariants enforced:
    - CrashingOption: crashed duration < normal duration and crashed cost
      >= normal cost.  All costs are Decimal.
    - FastTrackingOption: proposed lag < original lag and rework
      probability within [0, 1].
    - CompressionResult: compressed duration never negative; scores are
      clamped to [0, 100].

Failure modes:
    - InvalidCrashingOptionError, InvalidFastTrackingOptionError at option
      construction.
    - InvalidCompressionSelectionError when a selection names an unknown
      option, names one twice, or crashes outside [0, max crash hours].

Usage:
    analyzer = ScheduleCompressionAnalyzer()
    result = analyzer.analyze(
        crashing_options=crashes,
        fast_tracking_options=fast_tracks,
        selections=CompressionSelections(
            original_duration=Duration.from_days(60),
            crashes=(CrashSelection("pour-slab"),),
        ),
    )
    result.recommendation()
"""

from __future__ import annotations

import math
import time
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from enum import Enum

from schedule_engines.recommendation import (
    Confidence,
    Recommendation,
    RecommendationStatus,
)
from schedule_engines.tracer import traced_engine
from schedule_kernel.domain.values import HOURS_PER_DAY, Duration
from schedule_kernel.exceptions import (
    InvalidCompressionSelectionError,
    InvalidCrashingOptionError,
    InvalidFastTrackingOptionError,
)
from schedule_kernel.logging_config import get_logger

logger = get_logger("engines.compression")

DEFAULT_TOP_OPPORTUNITIES = 5


def _to_decimal(value: Decimal | str | int | float) -> Decimal:
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


class RiskLevel(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    EXTREME = "extreme"

    @classmethod
    def from_score(cls, score: float) -> RiskLevel:
        if score > 80:
            return cls.EXTREME
        if score > 60:
            return cls.HIGH
        if score > 40:
            return cls.MODERATE
        return cls.LOW


RISK_BASE_SCORES: dict[RiskLevel, float] = {
    RiskLevel.LOW: 20.0,
    RiskLevel.MODERATE: 50.0,
    RiskLevel.HIGH: 80.0,
    RiskLevel.EXTREME: 100.0,
}


# ---------------------------------------------------------------------------
# Crashing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CrashingOption:
    """
    Option to shorten one task by spending more on it.

    Contract:
        Cost grows linearly from ``normal_cost`` at the normal duration to
        ``crashed_cost`` at the crashed duration.

    Guarantees:
        - ``max_crash_hours > 0``; ``cost_slope() >= 0``.
    """

    task_id: str
    task_name: str
    normal_duration: Duration
    crashed_duration: Duration
    normal_cost: Decimal
    crashed_cost: Decimal

    def __post_init__(self) -> None:
        if self.crashed_duration.to_hours() >= self.normal_duration.to_hours():
            raise InvalidCrashingOptionError(
                self.task_id, "crashed duration must be shorter than normal duration"
            )
        try:
            normal = _to_decimal(self.normal_cost)
            crashed = _to_decimal(self.crashed_cost)
        except InvalidOperation as e:
            raise InvalidCrashingOptionError(self.task_id, "costs must be numeric") from e
        if not normal.is_finite() or not crashed.is_finite() or normal < 0:
            raise InvalidCrashingOptionError(self.task_id, "costs must be finite and non-negative")
        if crashed < normal:
            raise InvalidCrashingOptionError(
                self.task_id, "crashed cost must be greater than or equal to normal cost"
            )
        object.__setattr__(self, "normal_cost", normal)
        object.__setattr__(self, "crashed_cost", crashed)

    @classmethod
    def create(
        cls,
        *,
        task_id: str,
        task_name: str,
        normal_duration: Duration,
        crashed_duration: Duration,
        normal_cost: Decimal | str | int,
        crashed_cost: Decimal | str | int,
    ) -> CrashingOption:
        return cls(
            task_id=task_id,
            task_name=task_name,
            normal_duration=normal_duration,
            crashed_duration=crashed_duration,
            normal_cost=normal_cost,  # type: ignore[arg-type]
            crashed_cost=crashed_cost,  # type: ignore[arg-type]
        )

    @property
    def max_crash_hours(self) -> float:
        return self.normal_duration.to_hours() - self.crashed_duration.to_hours()

    @property
    def cost_increase(self) -> Decimal:
        return self.crashed_cost - self.normal_cost

    def cost_slope(self) -> Decimal:
        """Extra cost per hour of reduction."""
        return self.cost_increase / Decimal(str(self.max_crash_hours))

    def calculate_cost_for_reduction(self, reduction_hours: float) -> Decimal:
        """Total task cost after removing ``reduction_hours`` (clamped)."""
        if reduction_hours <= 0:
            return self.normal_cost
        if reduction_hours >= self.max_crash_hours:
            return self.crashed_cost
        return self.normal_cost + self.cost_slope() * Decimal(str(reduction_hours))

    def duration_after_crash(self, crash_hours: float) -> Duration:
        clamped = max(0.0, min(crash_hours, self.max_crash_hours))
        return Duration.from_hours(self.normal_duration.to_hours() - clamped)

    def can_crash_more(self, current_crash_hours: float) -> bool:
        return current_crash_hours < self.max_crash_hours

    def crash_efficiency(self) -> float:
        """Hours gained per unit of extra cost (infinite for free crashes)."""
        if self.cost_increase == 0:
            return math.inf
        return self.max_crash_hours / float(self.cost_increase)

    def crash_roi(self) -> float:
        """Percentage of time saved per percentage of cost added."""
        time_percent = self.max_crash_hours / self.normal_duration.to_hours() * 100
        if self.normal_cost == 0:
            return math.inf if self.cost_increase > 0 else 0.0
        cost_percent = float(self.cost_increase / self.normal_cost * 100)
        if cost_percent == 0:
            return math.inf
        return time_percent / cost_percent

    def __str__(self) -> str:
        return f"{self.task_name}: -{self.max_crash_hours:g}hrs @ ${self.cost_slope():.2f}/hr"


def order_by_cost_slope(options: Sequence[CrashingOption]) -> list[CrashingOption]:
    """Cheapest hour first; insertion order breaks ties."""
    return sorted(options, key=lambda o: o.cost_slope())


def order_by_efficiency(options: Sequence[CrashingOption]) -> list[CrashingOption]:
    """Most hours per unit cost first; insertion order breaks ties."""
    return sorted(options, key=lambda o: -o.crash_efficiency())


# ---------------------------------------------------------------------------
# Fast tracking
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class FastTrackingOption:
    """
    Option to overlap a task with its successor by shrinking their lag.

    Guarantees:
        - ``time_savings`` is positive.
        - ``risk_score()`` and ``benefit_score()`` are deterministic
          functions of risk level, rework probability and savings.
    """

    task_id: str
    task_name: str
    successor_id: str
    successor_name: str
    original_lag: Duration
    proposed_lag: Duration
    risk_level: RiskLevel
    risk_description: str
    rework_probability: float

    def __post_init__(self) -> None:
        if self.proposed_lag.to_hours() >= self.original_lag.to_hours():
            raise InvalidFastTrackingOptionError(
                self.task_id, self.successor_id, "proposed lag must be less than original lag"
            )
        p = self.rework_probability
        if isinstance(p, bool) or not isinstance(p, (int, float)) or not 0 <= p <= 1:
            raise InvalidFastTrackingOptionError(
                self.task_id, self.successor_id, "rework probability must be between 0 and 1"
            )
        try:
            object.__setattr__(self, "risk_level", RiskLevel(self.risk_level))
        except ValueError as e:
            raise InvalidFastTrackingOptionError(
                self.task_id, self.successor_id, f"unknown risk level {self.risk_level!r}"
            ) from e

    @classmethod
    def create(
        cls,
        *,
        task_id: str,
        task_name: str,
        successor_id: str,
        successor_name: str,
        original_lag: Duration,
        proposed_lag: Duration,
        risk_level: RiskLevel | str,
        risk_description: str = "",
        rework_probability: float,
    ) -> FastTrackingOption:
        return cls(
            task_id=task_id,
            task_name=task_name,
            successor_id=successor_id,
            successor_name=successor_name,
            original_lag=original_lag,
            proposed_lag=proposed_lag,
            risk_level=risk_level,  # type: ignore[arg-type]
            risk_description=risk_description,
            rework_probability=rework_probability,
        )

    @property
    def key(self) -> tuple[str, str]:
        return (self.task_id, self.successor_id)

    @property
    def label(self) -> str:
        return f"{self.task_name} → {self.successor_name}"

    @property
    def time_savings(self) -> Duration:
        return Duration.from_hours(self.original_lag.to_hours() - self.proposed_lag.to_hours())

    def expected_time_savings(self) -> Duration:
        """Savings discounted by the chance of rework."""
        return Duration.from_hours(self.time_savings.to_hours() * (1 - self.rework_probability))

    def rework_impact(self, average_rework_cost: Decimal | str | int) -> Decimal:
        return _to_decimal(average_rework_cost) * Decimal(str(self.rework_probability))

    def overlap_percentage(self) -> float:
        original = self.original_lag.to_hours()
        if original == 0:
            return 0.0
        return (original - self.proposed_lag.to_hours()) / original * 100

    def risk_score(self) -> float:
        return min(100.0, RISK_BASE_SCORES[self.risk_level] + self.rework_probability * 20)

    def benefit_score(self) -> float:
        return max(0.0, self.expected_time_savings().to_hours() * 10 - self.risk_score())

    def is_recommended(self) -> bool:
        return (
            self.risk_level in (RiskLevel.LOW, RiskLevel.MODERATE)
            and self.expected_time_savings().to_hours() > 0
            and self.benefit_score() > 50
        )

    def recommendation(self) -> Recommendation:
        score = self.benefit_score()
        risk = self.risk_score()
        expected = self.expected_time_savings()

        if self.risk_level == RiskLevel.EXTREME or risk > 80:
            return Recommendation(
                RecommendationStatus.REJECT,
                "Risk too high - potential for significant rework",
                Confidence.HIGH,
            )
        if score > 100 and expected.to_hours() > 16:
            return Recommendation(
                RecommendationStatus.ACCEPT,
                f"Excellent time savings ({expected.to_days():.1f} days) with manageable risk",
                Confidence.HIGH,
            )
        if score > 50 and self.risk_level == RiskLevel.LOW:
            return Recommendation(
                RecommendationStatus.ACCEPT,
                "Good time savings with low risk",
                Confidence.MEDIUM,
            )
        if score > 30:
            return Recommendation(
                RecommendationStatus.REVIEW,
                "Moderate benefit but requires careful risk management",
                Confidence.MEDIUM,
            )
        return Recommendation(
            RecommendationStatus.REJECT,
            "Limited time savings do not justify the risk",
            Confidence.HIGH,
        )

    def __str__(self) -> str:
        return (
            f"{self.label}: -{self.time_savings.to_days():.1f} days "
            f"({self.risk_level.value} risk, {self.rework_probability * 100:.0f}% rework chance)"
        )


def order_by_benefit(options: Sequence[FastTrackingOption]) -> list[FastTrackingOption]:
    """Highest benefit first; insertion order breaks ties."""
    return sorted(options, key=lambda o: -o.benefit_score())


def order_by_risk(options: Sequence[FastTrackingOption]) -> list[FastTrackingOption]:
    """Lowest risk first; insertion order breaks ties."""
    return sorted(options, key=lambda o: o.risk_score())


# ---------------------------------------------------------------------------
# Selections and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CrashSelection:
    """Crash ``task_id`` by ``crash_hours`` (None means fully)."""

    task_id: str
    crash_hours: float | None = None


@dataclass(frozen=True)
class FastTrackSelection:
    task_id: str
    successor_id: str


@dataclass(frozen=True)
class CompressionSelections:
    """The options a caller wants applied to a schedule of ``original_duration``."""

    original_duration: Duration
    crashes: tuple[CrashSelection, ...] = ()
    fast_tracks: tuple[FastTrackSelection, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "crashes", tuple(self.crashes))
        object.__setattr__(self, "fast_tracks", tuple(self.fast_tracks))


@dataclass(frozen=True)
class AppliedCrash:
    task_id: str
    task_name: str
    crashed_hours: float
    time_saved_hours: float
    cost_increase: Decimal


@dataclass(frozen=True)
class AppliedFastTrack:
    task_id: str
    successor_id: str
    task_names: str
    time_saved_hours: float
    risk_score: float


class CompressionStrategy(str, Enum):
    NONE = "none"
    CRASHING_ONLY = "crashing-only"
    FAST_TRACKING_ONLY = "fast-tracking-only"
    CRASHING_DOMINANT = "crashing-dominant"
    FAST_TRACKING_DOMINANT = "fast-tracking-dominant"
    BALANCED = "balanced"


class CompressionMethod(str, Enum):
    CRASHING = "crashing"
    FAST_TRACKING = "fast-tracking"


@dataclass(frozen=True)
class CrashingBreakdown:
    tasks_affected: int
    time_saved_hours: float
    cost_increase: Decimal


@dataclass(frozen=True)
class FastTrackingBreakdown:
    tasks_affected: int
    time_saved_hours: float
    average_risk_score: float


@dataclass(frozen=True)
class MethodBreakdown:
    crashing: CrashingBreakdown
    fast_tracking: FastTrackingBreakdown


@dataclass(frozen=True)
class CompressionOpportunity:
    """An option not yet applied, ranked by efficiency."""

    method: CompressionMethod
    task_id: str
    task_name: str
    time_savings_hours: float
    cost_increase: Decimal
    risk_score: float
    efficiency: float


@dataclass(frozen=True)
class CompressionResult:
    """
    Evaluated compression of one schedule.

    Contract:
        ``total_risk_score`` is the mean risk of the applied fast-tracks
        (0 when none).  Time saved is original minus compressed duration.

    Guarantees:
        - ``effectiveness_score()`` within [0, 100].
        - Never mutated after ``create``.
    """

    original_duration: Duration
    compressed_duration: Duration
    crashing_options: tuple[CrashingOption, ...]
    fast_tracking_options: tuple[FastTrackingOption, ...]
    applied_crashes: tuple[AppliedCrash, ...]
    applied_fast_tracks: tuple[AppliedFastTrack, ...]
    total_cost_increase: Decimal
    total_risk_score: float
    opportunity_limit: int = DEFAULT_TOP_OPPORTUNITIES

    @classmethod
    def create(
        cls,
        *,
        original_duration: Duration,
        compressed_duration: Duration,
        crashing_options: Sequence[CrashingOption],
        fast_tracking_options: Sequence[FastTrackingOption],
        applied_crashes: Sequence[AppliedCrash],
        applied_fast_tracks: Sequence[AppliedFastTrack],
        total_cost_increase: Decimal,
        opportunity_limit: int = DEFAULT_TOP_OPPORTUNITIES,
    ) -> CompressionResult:
        risk = sum(ft.risk_score for ft in applied_fast_tracks) / max(1, len(applied_fast_tracks))
        return cls(
            original_duration=original_duration,
            compressed_duration=compressed_duration,
            crashing_options=tuple(crashing_options),
            fast_tracking_options=tuple(fast_tracking_options),
            applied_crashes=tuple(applied_crashes),
            applied_fast_tracks=tuple(applied_fast_tracks),
            total_cost_increase=total_cost_increase,
            total_risk_score=risk,
            opportunity_limit=opportunity_limit,
        )

    @property
    def time_saved_hours(self) -> float:
        return self.original_duration.to_hours() - self.compressed_duration.to_hours()

    @property
    def time_saved_days(self) -> float:
        return self.time_saved_hours / HOURS_PER_DAY

    @property
    def risk_level(self) -> RiskLevel:
        return RiskLevel.from_score(self.total_risk_score)

    def compression_percentage(self) -> float:
        original = self.original_duration.to_hours()
        if original == 0:
            return 0.0
        return self.time_saved_hours / original * 100

    def cost_per_day_saved(self) -> Decimal:
        days = self.time_saved_days
        if days == 0:
            return Decimal("0")
        return self.total_cost_increase / Decimal(str(days))

    def method_breakdown(self) -> MethodBreakdown:
        fast = self.applied_fast_tracks
        return MethodBreakdown(
            crashing=CrashingBreakdown(
                tasks_affected=len(self.applied_crashes),
                time_saved_hours=sum(c.time_saved_hours for c in self.applied_crashes),
                cost_increase=sum((c.cost_increase for c in self.applied_crashes), Decimal("0")),
            ),
            fast_tracking=FastTrackingBreakdown(
                tasks_affected=len(fast),
                time_saved_hours=sum(ft.time_saved_hours for ft in fast),
                average_risk_score=sum(ft.risk_score for ft in fast) / max(1, len(fast)),
            ),
        )

    def strategy(self) -> CompressionStrategy:
        crashes = len(self.applied_crashes)
        fast = len(self.applied_fast_tracks)
        if crashes == 0 and fast == 0:
            return CompressionStrategy.NONE
        if fast == 0:
            return CompressionStrategy.CRASHING_ONLY
        if crashes == 0:
            return CompressionStrategy.FAST_TRACKING_ONLY
        crash_percent = crashes / (crashes + fast) * 100
        if crash_percent > 70:
            return CompressionStrategy.CRASHING_DOMINANT
        if crash_percent < 30:
            return CompressionStrategy.FAST_TRACKING_DOMINANT
        return CompressionStrategy.BALANCED

    def effectiveness_score(self) -> float:
        score = min(50.0, self.compression_percentage() * 2)

        cost_per_day = self.cost_per_day_saved()
        if cost_per_day > 10000:
            score -= 30
        elif cost_per_day > 5000:
            score -= 20
        elif cost_per_day > 2000:
            score -= 10

        if self.total_risk_score > 80:
            score -= 20
        elif self.total_risk_score > 60:
            score -= 15
        elif self.total_risk_score > 40:
            score -= 10

        return max(0.0, min(100.0, score))

    def recommendation(self) -> Recommendation:
        score = self.effectiveness_score()
        saved = self.time_saved_days
        cost_per_day = self.cost_per_day_saved()

        if score >= 70 and saved >= 5:
            return Recommendation(
                RecommendationStatus.ACCEPT,
                f"Excellent compression: {saved:.1f} days saved with good cost/risk balance",
                Confidence.HIGH,
            )
        if score >= 50 and saved >= 3 and cost_per_day < 5000:
            return Recommendation(
                RecommendationStatus.ACCEPT,
                f"Good compression: {saved:.1f} days saved at acceptable cost "
                f"(${cost_per_day:.0f}/day)",
                Confidence.MEDIUM,
            )
        if score >= 40 and saved >= 2:
            return Recommendation(
                RecommendationStatus.REVIEW,
                f"Moderate compression with trade-offs. Review cost (${cost_per_day:.0f}/day) "
                f"and risk ({self.total_risk_score:.0f}/100)",
                Confidence.MEDIUM,
            )
        if saved < 2:
            return Recommendation(
                RecommendationStatus.REJECT,
                "Limited time savings do not justify cost and risk",
                Confidence.HIGH,
            )
        return Recommendation(
            RecommendationStatus.REJECT,
            "Cost/risk too high for time savings achieved",
            Confidence.HIGH,
        )

    def top_opportunities(self, limit: int | None = None) -> tuple[CompressionOpportunity, ...]:
        """Unapplied options, most efficient first; ``limit`` defaults to ``opportunity_limit``."""
        if limit is None:
            limit = self.opportunity_limit
        applied_crashes = {c.task_id for c in self.applied_crashes}
        applied_fast = {(f.task_id, f.successor_id) for f in self.applied_fast_tracks}

        opportunities = [
            CompressionOpportunity(
                method=CompressionMethod.CRASHING,
                task_id=crash.task_id,
                task_name=crash.task_name,
                time_savings_hours=crash.max_crash_hours,
                cost_increase=crash.cost_increase,
                risk_score=0.0,
                efficiency=crash.crash_efficiency(),
            )
            for crash in self.crashing_options
            if crash.task_id not in applied_crashes
        ]
        opportunities.extend(
            CompressionOpportunity(
                method=CompressionMethod.FAST_TRACKING,
                task_id=ft.task_id,
                task_name=ft.label,
                time_savings_hours=ft.time_savings.to_hours(),
                cost_increase=Decimal("0"),
                risk_score=ft.risk_score(),
                efficiency=ft.benefit_score(),
            )
            for ft in self.fast_tracking_options
            if ft.key not in applied_fast
        )
        opportunities.sort(key=lambda o: -o.efficiency)
        return tuple(opportunities[:limit])

    def __str__(self) -> str:
        return (
            f"Compression ({self.strategy().value}): -{self.time_saved_days:.1f} days, "
            f"+${self.total_cost_increase:,}, Risk: {self.total_risk_score:.0f}/100"
        )


# ---------------------------------------------------------------------------
# Analyzer
# ---------------------------------------------------------------------------


class ScheduleCompressionAnalyzer:
    """
    Pure compression analyzer.

    Contract:
        No I/O, no clock access, fully deterministic.  Options are
        evaluated independently; the analyzer does not re-run the critical
        path, so savings on parallel paths are the caller's concern.

    Guarantees:
        - An applied crash saves its crash hours and costs
          ``calculate_cost_for_reduction(hours) - normal_cost``.
        - An applied fast-track saves its full lag reduction; rework risk
          shows up in the risk score, not in the saved hours.
        - Compressed duration is floored at zero.
    """

    def __init__(self, top_opportunities_limit: int = DEFAULT_TOP_OPPORTUNITIES):
        self.top_opportunities_limit = top_opportunities_limit

    @traced_engine("compression_analysis", "1.0", fingerprint_fields=("selections",))
    def analyze(
        self,
        *,
        crashing_options: Sequence[CrashingOption],
        fast_tracking_options: Sequence[FastTrackingOption],
        selections: CompressionSelections,
    ) -> CompressionResult:
        """
        Evaluate the selected options.

        Raises:
            InvalidCompressionSelectionError: see module failure modes.
        """
        t0 = time.monotonic()
        logger.info("compression_analysis_started", extra={
            "crashing_option_count": len(crashing_options),
            "fast_tracking_option_count": len(fast_tracking_options),
            "selected_crashes": len(selections.crashes),
            "selected_fast_tracks": len(selections.fast_tracks),
        })

        crashes = self._index_crashes(crashing_options)
        fast_tracks = self._index_fast_tracks(fast_tracking_options)

        applied_crashes: list[AppliedCrash] = []
        seen_crashes: set[str] = set()
        for selection in selections.crashes:
            option = crashes.get(selection.task_id)
            if option is None:
                raise InvalidCompressionSelectionError(
                    f"no crashing option for task {selection.task_id!r}"
                )
            if selection.task_id in seen_crashes:
                raise InvalidCompressionSelectionError(
                    f"task {selection.task_id!r} selected for crashing twice"
                )
            seen_crashes.add(selection.task_id)
            applied_crashes.append(self._apply_crash(option, selection.crash_hours))

        applied_fast: list[AppliedFastTrack] = []
        seen_fast: set[tuple[str, str]] = set()
        for selection in selections.fast_tracks:
            key = (selection.task_id, selection.successor_id)
            option = fast_tracks.get(key)
            if option is None:
                raise InvalidCompressionSelectionError(
                    f"no fast-tracking option for {key[0]!r} -> {key[1]!r}"
                )
            if key in seen_fast:
                raise InvalidCompressionSelectionError(
                    f"fast-track {key[0]!r} -> {key[1]!r} selected twice"
                )
            seen_fast.add(key)
            applied_fast.append(self._apply_fast_track(option))

        result = self._result(
            selections.original_duration,
            crashing_options,
            fast_tracking_options,
            applied_crashes,
            applied_fast,
        )

        logger.info("compression_analysis_completed", extra={
            "time_saved_hours": result.time_saved_hours,
            "total_cost_increase": result.total_cost_increase,
            "total_risk_score": result.total_risk_score,
            "strategy": result.strategy().value,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return result

    @traced_engine(
        "compression_planning", "1.0",
        fingerprint_fields=("original_duration", "target_reduction_days", "max_cost_increase", "max_risk_score"),
    )
    def plan(
        self,
        *,
        crashing_options: Sequence[CrashingOption],
        fast_tracking_options: Sequence[FastTrackingOption],
        original_duration: Duration,
        target_reduction_days: float,
        max_cost_increase: Decimal | None = None,
        max_risk_score: float | None = None,
    ) -> CompressionResult:
        """
        Greedy compression toward ``target_reduction_days``.

        Crashes are taken cheapest hour first while the target is unmet
        and the cost cap allows; fast-tracks are then taken highest
        benefit first, skipping any above ``max_risk_score``.

        Raises:
            InvalidCompressionSelectionError: negative target or caps.
        """
        if target_reduction_days < 0:
            raise InvalidCompressionSelectionError("target reduction cannot be negative")
        if max_cost_increase is not None and _to_decimal(max_cost_increase) < 0:
            raise InvalidCompressionSelectionError("max cost increase cannot be negative")
        if max_risk_score is not None and max_risk_score < 0:
            raise InvalidCompressionSelectionError("max risk score cannot be negative")

        self._index_crashes(crashing_options)
        self._index_fast_tracks(fast_tracking_options)

        cost_cap = _to_decimal(max_cost_increase) if max_cost_increase is not None else None
        target_hours = target_reduction_days * HOURS_PER_DAY
        saved = 0.0
        spent = Decimal("0")

        applied_crashes: list[AppliedCrash] = []
        for option in order_by_cost_slope(crashing_options):
            if saved >= target_hours:
                break
            if cost_cap is not None and spent >= cost_cap:
                break
            applied = self._apply_crash(option, None)
            if cost_cap is not None and spent + applied.cost_increase > cost_cap:
                continue
            applied_crashes.append(applied)
            saved += applied.time_saved_hours
            spent += applied.cost_increase

        applied_fast: list[AppliedFastTrack] = []
        for option in order_by_benefit(fast_tracking_options):
            if saved >= target_hours:
                break
            if max_risk_score is not None and option.risk_score() > max_risk_score:
                continue
            applied = self._apply_fast_track(option)
            applied_fast.append(applied)
            saved += applied.time_saved_hours

        logger.info("compression_plan_selected", extra={
            "target_hours": target_hours,
            "planned_hours": saved,
            "crashes": [c.task_id for c in applied_crashes],
            "fast_tracks": [f"{f.task_id}->{f.successor_id}" for f in applied_fast],
        })
        return self._result(
            original_duration, crashing_options, fast_tracking_options,
            applied_crashes, applied_fast,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _index_crashes(options: Sequence[CrashingOption]) -> dict[str, CrashingOption]:
        index: dict[str, CrashingOption] = {}
        for option in options:
            if option.task_id in index:
                raise InvalidCompressionSelectionError(
                    f"more than one crashing option for task {option.task_id!r}"
                )
            index[option.task_id] = option
        return index

    @staticmethod
    def _index_fast_tracks(
        options: Sequence[FastTrackingOption],
    ) -> dict[tuple[str, str], FastTrackingOption]:
        index: dict[tuple[str, str], FastTrackingOption] = {}
        for option in options:
            if option.key in index:
                raise InvalidCompressionSelectionError(
                    f"more than one fast-tracking option for {option.task_id!r} -> "
                    f"{option.successor_id!r}"
                )
            index[option.key] = option
        return index

    @staticmethod
    def _apply_crash(option: CrashingOption, crash_hours: float | None) -> AppliedCrash:
        hours = option.max_crash_hours if crash_hours is None else crash_hours
        if not 0 <= hours <= option.max_crash_hours + 1e-9:
            raise InvalidCompressionSelectionError(
                f"crash of {hours} hours for task {option.task_id!r} is outside "
                f"[0, {option.max_crash_hours}]"
            )
        hours = min(hours, option.max_crash_hours)
        return AppliedCrash(
            task_id=option.task_id,
            task_name=option.task_name,
            crashed_hours=hours,
            time_saved_hours=hours,
            cost_increase=option.calculate_cost_for_reduction(hours) - option.normal_cost,
        )

    @staticmethod
    def _apply_fast_track(option: FastTrackingOption) -> AppliedFastTrack:
        return AppliedFastTrack(
            task_id=option.task_id,
            successor_id=option.successor_id,
            task_names=option.label,
            time_saved_hours=option.time_savings.to_hours(),
            risk_score=option.risk_score(),
        )

    def _result(
        self,
        original_duration: Duration,
        crashing_options: Sequence[CrashingOption],
        fast_tracking_options: Sequence[FastTrackingOption],
        applied_crashes: Sequence[AppliedCrash],
        applied_fast: Sequence[AppliedFastTrack],
    ) -> CompressionResult:
        saved = sum(c.time_saved_hours for c in applied_crashes)
        saved += sum(f.time_saved_hours for f in applied_fast)
        compressed = Duration.from_hours(max(0.0, original_duration.to_hours() - saved))
        return CompressionResult.create(
            original_duration=original_duration,
            compressed_duration=compressed,
            crashing_options=crashing_options,
            fast_tracking_options=fast_tracking_options,
            applied_crashes=applied_crashes,
            applied_fast_tracks=applied_fast,
            total_cost_increase=sum((c.cost_increase for c in applied_crashes), Decimal("0")),
            opportunity_limit=self.top_opportunities_limit,
        )
