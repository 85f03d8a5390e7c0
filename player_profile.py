"""
Player behaviour profiles
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from balance_config import PHASES
from game_values import ReadOnlyMap


class UpgradeStrategy(Enum):
    """How the simulated player prioritises upgrade categories"""
    BALANCED = "balanced"
    STORAGE_FOCUSED = "storage_focused"
    PRODUCTION_FOCUSED = "production_focused"


@dataclass(frozen=True)
class SessionSlot:
    """A check-in window: start time, length (minutes), chance the player shows up"""
    hour: int
    minute: int = 0
    duration: int = 15
    probability: float = 1.0

    @property
    def minute_of_day(self) -> int:
        return self.hour * 60 + self.minute


def _efficiency(tutorial, early, mid, late, endgame) -> ReadOnlyMap:
    return ReadOnlyMap(zip(PHASES, (tutorial, early, mid, late, endgame)))


DEFAULT_WEEKDAY = (
    SessionSlot(7, 0, 10, 0.8),
    SessionSlot(12, 0, 5, 0.6),
    SessionSlot(18, 0, 20, 0.9),
)
DEFAULT_WEEKEND = (
    SessionSlot(9, 0, 30, 0.7),
    SessionSlot(14, 0, 25, 0.6),
    SessionSlot(20, 0, 45, 0.9),
)


@dataclass(frozen=True)
class PlayerProfile:
    """Behavioural parameters for the simulated player (replace, never mutate)"""
    name: str = 'default'
    weekday_schedule: Tuple[SessionSlot, ...] = DEFAULT_WEEKDAY
    weekend_schedule: Tuple[SessionSlot, ...] = DEFAULT_WEEKEND
    efficiency: ReadOnlyMap = field(default_factory=lambda: _efficiency(0.65, 0.70, 0.75, 0.80, 0.85))
    upgrade_strategy: UpgradeStrategy = UpgradeStrategy.BALANCED
    adventure_preference: str = 'medium'  # short / medium / long
    risk_tolerance: float = 0.7

    def __post_init__(self):
        for phase, value in self.efficiency.items():
            if not 0.0 <= value <= 1.0:
                raise ValueError(f"efficiency for {phase} must be in [0, 1], got {value}")
        if self.adventure_preference not in ('short', 'medium', 'long'):
            raise ValueError(f"unknown adventure preference {self.adventure_preference!r}")

    def efficiency_for(self, phase: str) -> float:
        return self.efficiency.get(phase, 0.7)

    def schedule_for(self, weekend: bool) -> Tuple[SessionSlot, ...]:
        return self.weekend_schedule if weekend else self.weekday_schedule

    def summary(self) -> Dict[str, object]:
        return {
            'name': self.name,
            'upgrade_strategy': self.upgrade_strategy.value,
            'adventure_preference': self.adventure_preference,
            'risk_tolerance': self.risk_tolerance,
            'efficiency': dict(self.efficiency),
            'weekday_sessions': len(self.weekday_schedule),
            'weekend_sessions': len(self.weekend_schedule),
        }

    # ---- Presets ----

    @staticmethod
    def default():
        return PlayerProfile()

    @staticmethod
    def speedrunner():
        return PlayerProfile(
            name='speedrunner',
            weekday_schedule=(SessionSlot(7, 0, 20, 0.95), SessionSlot(12, 0, 15, 0.9),
                              SessionSlot(18, 0, 40, 0.95), SessionSlot(22, 0, 20, 0.9)),
            weekend_schedule=(SessionSlot(9, 0, 60, 0.95), SessionSlot(14, 0, 60, 0.9),
                              SessionSlot(20, 0, 60, 0.95)),
            efficiency=_efficiency(0.95, 0.95, 0.95, 0.95, 0.95),
            upgrade_strategy=UpgradeStrategy.PRODUCTION_FOCUSED,
            adventure_preference='long',
            risk_tolerance=0.9,
        )

    @staticmethod
    def casual():
        return PlayerProfile(
            name='casual',
            weekday_schedule=(SessionSlot(8, 0, 5, 0.6), SessionSlot(19, 0, 10, 0.7)),
            weekend_schedule=(SessionSlot(10, 0, 15, 0.6), SessionSlot(19, 0, 20, 0.7)),
            efficiency=_efficiency(0.7, 0.7, 0.7, 0.7, 0.7),
            upgrade_strategy=UpgradeStrategy.BALANCED,
            adventure_preference='short',
            risk_tolerance=0.4,
        )

    @staticmethod
    def weekend_warrior():
        return PlayerProfile(
            name='weekend_warrior',
            weekday_schedule=(SessionSlot(20, 0, 5, 0.4),),
            weekend_schedule=(SessionSlot(9, 0, 90, 0.9), SessionSlot(14, 0, 90, 0.8),
                              SessionSlot(20, 0, 60, 0.9)),
            efficiency=_efficiency(0.6, 0.6, 0.6, 0.6, 0.6),
            upgrade_strategy=UpgradeStrategy.STORAGE_FOCUSED,
            adventure_preference='long',
            risk_tolerance=0.6,
        )

    @staticmethod
    def idle(efficiency: Optional[float] = None):
        """No scheduled sessions; the farm only moves through helpers or direct calls"""
        value = 0.7 if efficiency is None else efficiency
        return PlayerProfile(
            name='idle',
            weekday_schedule=(),
            weekend_schedule=(),
            efficiency=_efficiency(value, value, value, value, value),
        )
