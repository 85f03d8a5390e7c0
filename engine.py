"""
Time Hero - Simulation Engine (Pure Logic, No UI)
=================================================
Minute-resolution tick engine for the Time Hero farm economy.
Used by the Monte Carlo orchestrator and by any live monitor that wants to
step a single run and watch its snapshots and event log.
"""

import logging
import math
import random
import threading
import time
from collections import deque
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from analytics import detect_bottlenecks
from balance_config import BALANCE, PHASES, BalanceConstants
from game_values import (CROP_TIERS, MATERIALS, Crop, GameConfiguration, ReadOnlyMap,
                         default_game_values)
from player_profile import PlayerProfile, SessionSlot
from prerequisites import DependencyGraph, check_prerequisites, granted_reference, recommend_upgrades

logger = logging.getLogger(__name__)


# ==================== Constants ====================

STARTING_PLOTS = 3
STARTING_ENERGY_CAP = 50.0
STARTING_WATER = 20.0
STARTING_CARRY_CAPACITY = 2
STARTING_TOOLS = ('watering_can_tool',)
STARTING_FARM_STAGE = 'homestead'
START_HOUR = 8
MINUTES_PER_DAY = 24 * 60

MAX_GROWTH_STAGE = 4
LOCATIONS = ('home', 'adventure', 'mine', 'forge', 'tower', 'town')

# Seconds to sleep between ticks for each speed setting
SPEEDS = {1: 1.0, 10: 0.1, 100: 0.01, 'max': 0.0}

# Discovery order: first two helpers are fixed, later ones cycle
HELPER_ORDER = ('gnome', 'golem')
HELPER_CYCLE = ('sprite', 'dragon', 'phoenix')

PHASE_CROP_TIERS = {
    'tutorial': ('early',),
    'early': ('early',),
    'mid': ('early', 'mid'),
    'late': ('early', 'mid', 'late'),
    'endgame': CROP_TIERS,
}

LOG_LEVELS = ('minimal', 'standard', 'detailed', 'debug')


def _build_effect_table() -> Dict[str, Tuple[str, int]]:
    table = {}
    for cap in (150, 500, 1500, 6000, 20000, 100000):
        table[f'energy_cap_{cap}'] = ('energy_cap', cap)
    for cap in (60, 200, 600, 2000, 10000):
        table[f'water_cap_{cap}'] = ('water_cap', cap)
    for crops in (4, 8, 12, 20, 30):
        table[f'carry_{crops}_crops'] = ('carry_capacity', crops)
    for floor in range(2, 8):
        table[f'tower_floor_{floor}'] = ('tower_floors', floor)
    for plots in (2, 5, 10, 20, 40):
        table[f'expand_plots_{plots}'] = ('plots', plots)
    return table


EFFECTS = _build_effect_table()


# ==================== Enums ====================

class Severity(Enum):
    INFO = "info"
    WARNING = "warning"
    MAJOR = "major"
    ERROR = "error"


class EventCategory(Enum):
    SIMULATION = "simulation"
    CONFIG = "config"
    FARM = "farm"
    RESOURCE = "resource"
    ADVENTURE = "adventure"
    MINING = "mining"
    DISCOVERY = "discovery"
    HELPER = "helper"
    UPGRADE = "upgrade"
    PROGRESSION = "progression"
    PLAYER = "player"
    TIME = "time"


class RunStatus(Enum):
    """Terminal state of one run"""
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    STOPPED = "stopped"


class SimulationFailed(RuntimeError):
    """Raised when results are requested from a run that hit a fatal error"""


# ==================== Data Classes ====================

@dataclass
class Clock:
    day: int = 1
    hour: int = START_HOUR
    minute: int = 0

    def advance(self, minutes: int = 1):
        total = self.hour * 60 + self.minute + minutes
        self.day += total // MINUTES_PER_DAY
        self.hour, self.minute = divmod(total % MINUTES_PER_DAY, 60)

    def label(self) -> str:
        return f"Day {self.day} {self.hour:02d}:{self.minute:02d}"


@dataclass
class EnergyPool:
    current: float = 0.0
    cap: float = STARTING_ENERGY_CAP


@dataclass
class WaterTank:
    current: float = STARTING_WATER
    max: float = STARTING_WATER


@dataclass
class Resources:
    energy: EnergyPool = field(default_factory=EnergyPool)
    gold: float = 0.0
    materials: Dict[str, float] = field(default_factory=lambda: {m: 0.0 for m in MATERIALS})


@dataclass
class Plot:
    """One farm plot: empty -> growing (0..3) -> ready (4) -> empty"""
    id: int
    crop: Optional[str] = None
    growth_stage: int = 0
    watered: bool = False
    planted_at_tick: Optional[int] = None

    @property
    def is_empty(self) -> bool:
        return self.crop is None

    @property
    def is_ready(self) -> bool:
        return self.crop is not None and self.growth_stage >= MAX_GROWTH_STAGE

    def clear(self):
        self.crop = None
        self.growth_stage = 0
        self.watered = False
        self.planted_at_tick = None


@dataclass
class HeroAction:
    """The hero's single in-flight action"""
    kind: str  # 'adventure' or 'mining'
    target: str
    remaining_ticks: int
    spent_energy: float
    duration_tier: Optional[str] = None
    depth: int = 0
    started_at_tick: int = 0


@dataclass(frozen=True)
class Helper:
    id: str
    type: str
    name: str
    abilities: frozenset
    efficiency: float
    discovered_at_tick: int
    discovered_day: int


@dataclass(frozen=True)
class GameEvent:
    tick: int
    day: int
    time: str
    category: EventCategory
    message: str
    severity: Severity

    def as_dict(self) -> dict:
        return {
            'tick': self.tick,
            'day': self.day,
            'time': self.time,
            'category': self.category.value,
            'message': self.message,
            'severity': self.severity.value,
        }


@dataclass
class Session:
    """An active player check-in"""
    slot: SessionSlot
    started_at_tick: int
    ends_at_tick: int
    next_decision_tick: int
    iterations: int = 0
    actions: int = 0


@dataclass
class Metrics:
    """Write-only accumulators read by the analyzer"""
    energy_generated: float = 0.0
    energy_spent: float = 0.0
    energy_wasted: float = 0.0
    gold_earned: float = 0.0
    phase_durations: Dict[str, int] = field(default_factory=dict)
    phase_transition_days: Dict[str, int] = field(default_factory=lambda: {'tutorial': 1})
    phase_transition_ticks: Dict[str, int] = field(default_factory=lambda: {'tutorial': 0})
    location_time: Dict[str, int] = field(default_factory=lambda: {loc: 0 for loc in LOCATIONS})
    upgrade_timings: Dict[str, Tuple[int, int]] = field(default_factory=dict)
    helper_discovery_days: Dict[str, int] = field(default_factory=dict)
    sessions_started: int = 0
    session_minutes: int = 0
    player_actions: int = 0
    crops_planted: int = 0
    crops_harvested: int = 0
    adventures_completed: int = 0
    mining_trips_completed: int = 0
    upgrades_purchased: int = 0
    rejected_operations: int = 0

    def freeze(self) -> 'MetricsSnapshot':
        """Read-only copy for a RunResult (dicts become ReadOnlyMaps)"""
        values = {name: ReadOnlyMap(value) if isinstance(value, dict) else value
                  for name, value in vars(self).items()}
        return MetricsSnapshot(**values)


@dataclass(frozen=True)
class MetricsSnapshot:
    """Frozen Metrics, as stored on a finished run"""
    energy_generated: float
    energy_spent: float
    energy_wasted: float
    gold_earned: float
    phase_durations: ReadOnlyMap
    phase_transition_days: ReadOnlyMap
    phase_transition_ticks: ReadOnlyMap
    location_time: ReadOnlyMap
    upgrade_timings: ReadOnlyMap
    helper_discovery_days: ReadOnlyMap
    sessions_started: int
    session_minutes: int
    player_actions: int
    crops_planted: int
    crops_harvested: int
    adventures_completed: int
    mining_trips_completed: int
    upgrades_purchased: int
    rejected_operations: int


@dataclass
class SimulationSettings:
    """Configuration for simulation runs"""
    max_days: int = 35
    max_ticks: Optional[int] = None
    log_level: str = 'standard'
    max_log_entries: int = 10_000
    history_size: int = 672  # hourly snapshots (four weeks)
    session_clock: str = 'wall_clock'  # or 'simulated'
    autoplay: bool = True
    helpers_enabled: bool = True
    enforce_prerequisites: bool = True
    balance: BalanceConstants = field(default_factory=lambda: BALANCE)

    def __post_init__(self):
        if self.log_level not in LOG_LEVELS:
            raise ValueError(f"unknown log level {self.log_level!r}")
        if self.session_clock not in ('wall_clock', 'simulated'):
            raise ValueError(f"unknown session clock {self.session_clock!r}")

    @staticmethod
    def baseline():
        return SimulationSettings()

    @staticmethod
    def simulated_clock():
        return SimulationSettings(session_clock='simulated')

    @staticmethod
    def fast_test(max_days: int = 3):
        return SimulationSettings(max_days=max_days, session_clock='simulated', log_level='detailed')


@dataclass
class GameState:
    """Complete mutable state of one run (pure data, no UI)"""
    clock: Clock = field(default_factory=Clock)
    tick: int = 0
    resources: Resources = field(default_factory=Resources)
    plots: List[Plot] = field(default_factory=lambda: [Plot(i) for i in range(1, STARTING_PLOTS + 1)])
    hero_action: Optional[HeroAction] = None
    hero_location: str = 'home'
    carry_capacity: int = STARTING_CARRY_CAPACITY
    water_tank: WaterTank = field(default_factory=WaterTank)
    tower_floors: int = 1
    helpers: List[Helper] = field(default_factory=list)
    owned_upgrades: List[str] = field(default_factory=list)
    tools: set = field(default_factory=lambda: set(STARTING_TOOLS))
    farm_stages: set = field(default_factory=lambda: {STARTING_FARM_STAGE})
    buildings: set = field(default_factory=set)
    phase: str = 'tutorial'
    phase_started_at_tick: int = 0
    session: Optional[Session] = None
    metrics: Metrics = field(default_factory=Metrics)
    event_log: deque = field(default_factory=lambda: deque(maxlen=10_000))
    resource_history: deque = field(default_factory=lambda: deque(maxlen=672))
    last_cap_warning_tick: Optional[int] = None

    # End state
    stopped: bool = False
    failed: bool = False
    error: Optional[str] = None

    @property
    def active_plots(self) -> int:
        return sum(1 for p in self.plots if p.crop is not None)

    @property
    def helpers_found(self) -> int:
        return len(self.helpers)

    @property
    def days_passed(self) -> int:
        return self.clock.day - 1

    @property
    def phase_index(self) -> int:
        return PHASES.index(self.phase)


@dataclass(frozen=True)
class PlotSnapshot:
    id: int
    crop: Optional[str]
    growth_stage: int
    watered: bool
    planted_at_tick: Optional[int]


@dataclass(frozen=True)
class GameSnapshot:
    """Read-only view of a GameState at one tick"""
    tick: int
    day: int
    hour: int
    minute: int
    phase: str
    energy: float
    energy_cap: float
    gold: float
    materials: ReadOnlyMap
    water: float
    water_max: float
    carry_capacity: int
    tower_floors: int
    plots: Tuple[PlotSnapshot, ...]
    hero_action: Optional[ReadOnlyMap]
    hero_location: str
    helpers: Tuple[Helper, ...]
    owned_upgrades: Tuple[str, ...]
    tools: frozenset
    farm_stages: frozenset
    buildings: frozenset

    @property
    def active_plots(self) -> int:
        return sum(1 for p in self.plots if p.crop is not None)

    @property
    def total_plots(self) -> int:
        return len(self.plots)

    @property
    def phase_index(self) -> int:
        return PHASES.index(self.phase)


@dataclass(frozen=True)
class RunResult:
    """Final snapshot + metrics of one run. Immutable once produced."""
    seed: Optional[int]
    status: RunStatus
    snapshot: GameSnapshot
    metrics: MetricsSnapshot
    events: Tuple[GameEvent, ...]
    max_days: int
    profile: ReadOnlyMap
    bottlenecks: Tuple = ()


# ==================== Helper Functions ====================

def clamp(x, a, b):
    """Clamp value between min and max"""
    return max(a, min(b, x))


def discovery_chance(helpers_found: int, active_plots: int, days_passed: int,
                     balance: BalanceConstants = BALANCE) -> float:
    """Pity-adjusted chance of discovering the next helper on one check"""
    tiers = balance.discovery_tiers
    tier = tiers[min(helpers_found, len(tiers) - 1)]
    plot_bonus = max(0, active_plots - tier.plot_threshold) * tier.per_plot_bonus
    pity_bonus = max(0, days_passed - tier.day_threshold) * tier.per_day_bonus
    return min(tier.cap, plot_bonus + pity_bonus)


def helper_type_for(ordinal: int) -> str:
    """Helper type for the n-th discovery (0-based)"""
    if ordinal < len(HELPER_ORDER):
        return HELPER_ORDER[ordinal]
    return HELPER_CYCLE[(ordinal - len(HELPER_ORDER)) % len(HELPER_CYCLE)]


def mining_cost(depth: int, balance: BalanceConstants = BALANCE) -> int:
    return int(math.floor(balance.mining_cost_base * depth ** balance.mining_cost_exponent))


# ==================== Engine Class ====================

class Engine:
    """Pure game logic engine (no UI dependencies)"""

    def __init__(self, settings: Optional[SimulationSettings] = None, seed: Optional[int] = None,
                 game_values: Optional[GameConfiguration] = None, profile: Optional[PlayerProfile] = None,
                 wall_clock: Optional[Callable[[], datetime]] = None, stop_event=None,
                 on_snapshot: Optional[Callable[[GameSnapshot], None]] = None):
        self.settings = settings if settings else SimulationSettings.baseline()
        self.values = game_values if game_values else default_game_values()
        self.profile = profile if profile else PlayerProfile.default()
        self.balance = self.settings.balance
        self.wall_clock = wall_clock if wall_clock else datetime.now
        self.on_snapshot = on_snapshot
        self.max_days = self.settings.max_days
        self._seed = seed
        self._stop = stop_event if stop_event is not None else threading.Event()
        self._running = threading.Event()
        self._running.set()

        self._ability_handlers = {
            'auto_harvest': self._auto_harvest,
            'auto_plant': self._auto_plant,
            'auto_water': self._auto_water,
            'auto_adventure': self._auto_adventure,
            'auto_mine': self._auto_mine,
        }

        self.rng = random.Random(seed)
        self.gs = self._fresh_state()

    def _fresh_state(self) -> GameState:
        gs = GameState(
            event_log=deque(maxlen=self.settings.max_log_entries),
            resource_history=deque(maxlen=self.settings.history_size),
        )
        self.gs = gs
        self.log(EventCategory.SIMULATION,
                 f"Simulation initialized (seed={self._seed}, profile={self.profile.name}, "
                 f"max_days={self.max_days})")
        return gs

    def reset(self, seed: Optional[int] = None):
        """Throw away the current run and start again from day 1"""
        if seed is not None:
            self._seed = seed
        self.rng = random.Random(self._seed)
        if hasattr(self._stop, 'clear'):
            self._stop.clear()
        self._running.set()
        self.gs = self._fresh_state()

    # ==================== Event Log ====================

    def log(self, category: EventCategory, message: str, severity: Severity = Severity.INFO):
        """Append to the bounded event log (filtered by log level)"""
        level = self.settings.log_level
        if level == 'minimal' and severity is Severity.INFO:
            return
        if level == 'standard' and category is EventCategory.TIME:
            return

        gs = self.gs
        event = GameEvent(
            tick=gs.tick,
            day=gs.clock.day,
            time=f"{gs.clock.hour:02d}:{gs.clock.minute:02d}",
            category=category,
            message=message,
            severity=severity,
        )
        gs.event_log.append(event)

        if level == 'debug':
            logger.debug("[%s] %s %s: %s", event.severity.value, gs.clock.label(), category.value, message)

    def _reject(self, category: EventCategory, message: str) -> bool:
        self.gs.metrics.rejected_operations += 1
        self.log(category, message, Severity.WARNING)
        return False

    def update_player_profile(self, profile: PlayerProfile):
        """Swap in a whole new profile (profiles are never edited in place)"""
        self.profile = profile
        self.log(EventCategory.CONFIG, f"Player profile replaced ({profile.name})")

    # ==================== Resource Ledger ====================

    def resource_amount(self, kind: str) -> float:
        res = self.gs.resources
        if kind == 'energy':
            return res.energy.current
        if kind == 'gold':
            return res.gold
        return res.materials.get(kind, 0.0)

    def add_resource(self, kind: str, amount: float) -> bool:
        if amount < 0:
            return self._reject(EventCategory.RESOURCE, f"Refused negative credit of {amount} {kind}")
        res = self.gs.resources
        if kind == 'energy':
            res.energy.current += amount
        elif kind == 'gold':
            res.gold += amount
        else:
            res.materials[kind] = res.materials.get(kind, 0.0) + amount
        return True

    def spend_resource(self, kind: str, amount: float) -> bool:
        """Spend if affordable; False (and no change) otherwise"""
        if amount < 0 or self.resource_amount(kind) < amount:
            return False
        res = self.gs.resources
        if kind == 'energy':
            res.energy.current -= amount
            self.gs.metrics.energy_spent += amount
        elif kind == 'gold':
            res.gold -= amount
        else:
            res.materials[kind] -= amount
        return True

    def can_spend(self, costs: Dict[str, float]) -> bool:
        return all(self.resource_amount(kind) >= amount for kind, amount in costs.items())

    def spend_all(self, costs: Dict[str, float]) -> bool:
        """All-or-nothing spend of several resources"""
        if not self.can_spend(costs):
            return False
        for kind, amount in costs.items():
            self.spend_resource(kind, amount)
        return True

    def generate_energy(self, amount: float):
        self.add_resource('energy', amount)
        self.gs.metrics.energy_generated += amount

    def gain_gold(self, amount: float):
        self.add_resource('gold', amount)
        self.gs.metrics.gold_earned += amount

    def enforce_caps(self) -> float:
        """Clamp energy to its cap; the excess is counted as waste"""
        gs = self.gs
        energy = gs.resources.energy
        if energy.current <= energy.cap:
            return 0.0

        excess = energy.current - energy.cap
        energy.current = energy.cap
        gs.metrics.energy_wasted += excess

        interval = self.balance.cap_warning_interval
        if gs.last_cap_warning_tick is None or gs.tick - gs.last_cap_warning_tick >= interval:
            gs.last_cap_warning_tick = gs.tick
            self.log(EventCategory.RESOURCE,
                     f"Energy at cap ({energy.cap:.0f}); {gs.metrics.energy_wasted:.1f} wasted so far",
                     Severity.WARNING)
        return excess

    # ==================== Farm ====================

    def plot(self, plot_id: int) -> Optional[Plot]:
        for p in self.gs.plots:
            if p.id == plot_id:
                return p
        return None

    def ready_plots(self) -> List[Plot]:
        return [p for p in self.gs.plots if p.is_ready]

    def empty_plots(self) -> List[Plot]:
        return [p for p in self.gs.plots if p.is_empty]

    def plant(self, plot_id: int, crop_id: str) -> bool:
        plot = self.plot(plot_id)
        if plot is None:
            return self._reject(EventCategory.FARM, f"Cannot plant: no plot {plot_id}")
        if not plot.is_empty:
            return self._reject(EventCategory.FARM, f"Cannot plant: plot {plot_id} is occupied by {plot.crop}")
        crop = self.values.crop(crop_id)
        if crop is None:
            return self._reject(EventCategory.FARM, f"Cannot plant: unknown crop {crop_id!r}")
        if crop.seed_cost and not self.spend_resource('gold', crop.seed_cost):
            return self._reject(EventCategory.FARM, f"Cannot plant {crop.name}: seeds cost {crop.seed_cost:.0f} gold")

        plot.crop = crop.id
        plot.growth_stage = 0
        plot.watered = False
        plot.planted_at_tick = self.gs.tick
        self.gs.metrics.crops_planted += 1
        self.log(EventCategory.FARM, f"Planted {crop.name} on plot {plot_id}")
        return True

    def harvest_crop(self, plot_id: int, actor: str = 'Hero') -> bool:
        plot = self.plot(plot_id)
        if plot is None or not plot.is_ready:
            return self._reject(EventCategory.FARM, f"Cannot harvest plot {plot_id}: nothing ready")

        crop = self.values.crop(plot.crop)
        if crop is None:
            self.log(EventCategory.FARM, f"Harvested unknown crop {plot.crop!r}; no energy", Severity.WARNING)
        else:
            self.generate_energy(crop.energy_yield)
            self.log(EventCategory.FARM, f"{actor} harvested {crop.name} (+{crop.energy_yield:.0f} energy)")
        plot.clear()
        self.gs.metrics.crops_harvested += 1
        return True

    def water_plot(self, plot_id: int) -> bool:
        plot = self.plot(plot_id)
        if plot is None or plot.is_empty or plot.watered:
            return self._reject(EventCategory.FARM, f"Cannot water plot {plot_id}")
        tank = self.gs.water_tank
        if tank.current < 1:
            return self._reject(EventCategory.FARM, "Cannot water: tank is empty")
        tank.current -= 1
        plot.watered = True
        return True

    def update_farm_growth(self):
        """Recompute each plot's stage from elapsed time (no drift)"""
        tick = self.gs.tick
        for plot in self.gs.plots:
            if plot.crop is None:
                continue
            crop = self.values.crop(plot.crop)
            if crop is None:
                continue
            elapsed = tick - plot.planted_at_tick
            stage = int(math.floor(elapsed / crop.growth_time * MAX_GROWTH_STAGE))
            plot.growth_stage = clamp(stage, 0, MAX_GROWTH_STAGE)

    def generate_farm_energy(self) -> float:
        """Ready crops keep producing energy every minute until harvested"""
        total = 0.0
        for plot in self.gs.plots:
            if plot.is_ready:
                crop = self.values.crop(plot.crop)
                if crop is not None:
                    total += crop.energy_per_minute
        if total:
            self.generate_energy(total)
        return total

    def refill_water(self):
        tank = self.gs.water_tank
        if self.gs.tick % self.balance.water_refill_interval == 0 and tank.current < tank.max:
            tank.current = min(tank.max, tank.current + 1)

    def available_crops(self) -> List[Crop]:
        tiers = PHASE_CROP_TIERS.get(self.gs.phase, ('early',))
        day = self.gs.clock.day
        return [c for c in self.values.crops.values() if c.tier in tiers and c.unlock_day <= day]

    def choose_crop(self, efficiency: float) -> Optional[Crop]:
        """Best energy-per-minute crop with p=efficiency, otherwise a random one"""
        crops = self.available_crops()
        if not crops:
            return None
        if self.rng.random() < efficiency:
            return max(crops, key=lambda c: c.energy_per_minute)
        return self.rng.choice(crops)

    # ==================== Hero Actions ====================

    @property
    def hero_busy(self) -> bool:
        return self.gs.hero_action is not None

    def start_adventure(self, adventure_id: str, duration: str = 'medium') -> bool:
        gs = self.gs
        adventure = self.values.adventure(adventure_id)
        if adventure is None:
            return self._reject(EventCategory.ADVENTURE, f"Unknown adventure {adventure_id!r}")
        if self.hero_busy:
            return self._reject(EventCategory.ADVENTURE,
                                f"Cannot start {adventure.name}: hero is busy ({gs.hero_action.kind})")
        if gs.clock.day < adventure.unlock_day:
            return self._reject(EventCategory.ADVENTURE,
                                f"{adventure.name} unlocks on day {adventure.unlock_day}")
        tier = adventure.tier(duration)
        if tier is None:
            return self._reject(EventCategory.ADVENTURE, f"Invalid duration {duration!r} for {adventure.name}")
        if not self.spend_resource('energy', tier.energy):
            return self._reject(EventCategory.ADVENTURE,
                                f"Not enough energy for {adventure.name} ({tier.energy:.0f} needed)")

        gs.hero_action = HeroAction(
            kind='adventure',
            target=adventure.id,
            remaining_ticks=tier.duration,
            spent_energy=tier.energy,
            duration_tier=duration,
            started_at_tick=gs.tick,
        )
        gs.hero_location = 'adventure'
        self.log(EventCategory.ADVENTURE,
                 f"Started {duration} {adventure.name} ({tier.duration} min, -{tier.energy:.0f} energy)")
        return True

    def start_mining(self, depth: int = 1, duration: Optional[int] = None) -> bool:
        gs = self.gs
        if depth < 1:
            return self._reject(EventCategory.MINING, f"Invalid mining depth {depth}")
        if self.hero_busy:
            return self._reject(EventCategory.MINING, f"Cannot mine: hero is busy ({gs.hero_action.kind})")

        level = self.values.mining_level(depth)
        unlock_day = level.unlock_day if level else 1
        if gs.clock.day < unlock_day:
            return self._reject(EventCategory.MINING, f"Depth {depth} unlocks on day {unlock_day}")

        if duration is None:
            duration = level.duration if level else self.balance.default_mining_duration
        cost = mining_cost(depth, self.balance)
        if not self.spend_resource('energy', cost):
            return self._reject(EventCategory.MINING, f"Not enough energy to mine depth {depth} ({cost} needed)")

        gs.hero_action = HeroAction(
            kind='mining',
            target=f'depth_{depth}',
            remaining_ticks=duration,
            spent_energy=cost,
            depth=depth,
            started_at_tick=gs.tick,
        )
        gs.hero_location = 'mine'
        self.log(EventCategory.MINING, f"Started mining depth {depth} ({duration} min, -{cost} energy)")
        return True

    def process_hero_action(self):
        action = self.gs.hero_action
        if action is None:
            return
        action.remaining_ticks = max(0, action.remaining_ticks - 1)
        if action.remaining_ticks > 0:
            return

        self.gs.hero_action = None
        self.gs.hero_location = 'home'
        if action.kind == 'adventure':
            self._complete_adventure(action)
        else:
            self._complete_mining(action)

    def _complete_adventure(self, action: HeroAction):
        adventure = self.values.adventure(action.target)
        if adventure is None:
            self.log(EventCategory.ADVENTURE, f"Adventure {action.target!r} vanished from catalog",
                     Severity.WARNING)
            return

        b = self.balance
        self.gain_gold(adventure.gold_reward)
        loot = {}
        if adventure.common_material and adventure.common_amount:
            loot[adventure.common_material] = adventure.common_amount
        if (action.duration_tier != 'short' and adventure.rare_material
                and self.rng.random() < b.rare_drop_chance):
            loot[adventure.rare_material] = loot.get(adventure.rare_material, 0) + adventure.rare_amount
        boss = (action.duration_tier == 'long' and adventure.boss_material
                and self.rng.random() < b.boss_drop_chance)
        if boss:
            loot[adventure.boss_material] = loot.get(adventure.boss_material, 0) + adventure.boss_amount

        for material, amount in loot.items():
            self.add_resource(material, amount)
        self.gs.metrics.adventures_completed += 1

        loot_text = ', '.join(f"{amount} {name}" for name, amount in loot.items()) or 'no materials'
        self.log(EventCategory.ADVENTURE,
                 f"Completed {adventure.name}: +{adventure.gold_reward:.0f} gold, {loot_text}",
                 Severity.MAJOR if boss else Severity.INFO)

    def _complete_mining(self, action: HeroAction):
        b = self.balance
        depth = action.depth
        gold = math.floor(b.mining_gold_base * depth ** b.mining_gold_exponent)
        loot = {'stone': math.floor(b.mining_stone_per_depth * depth)}
        if depth >= b.copper_min_depth and self.rng.random() < b.copper_chance:
            loot['copper'] = math.floor(depth / 2)
        if depth >= b.iron_min_depth and self.rng.random() < b.iron_chance:
            loot['iron'] = math.floor(depth / 5)

        self.gain_gold(gold)
        for material, amount in loot.items():
            self.add_resource(material, amount)
        self.gs.metrics.mining_trips_completed += 1

        loot_text = ', '.join(f"{amount} {name}" for name, amount in loot.items())
        self.log(EventCategory.MINING, f"Mining depth {depth} complete: +{gold} gold, {loot_text}")

    # ==================== Helpers ====================

    def check_helper_discovery(self) -> Optional[Helper]:
        """One Bernoulli discovery trial (only while something is growing)"""
        gs = self.gs
        if gs.active_plots == 0:
            return None
        chance = discovery_chance(gs.helpers_found, gs.active_plots, gs.days_passed, self.balance)
        if chance > 0 and self.rng.random() < chance:
            return self.discover_helper()
        return None

    def discover_helper(self) -> Optional[Helper]:
        gs = self.gs
        ordinal = gs.helpers_found
        helper_type = helper_type_for(ordinal)
        archetype = self.values.helpers.get(helper_type)
        if archetype is None:
            self.log(EventCategory.DISCOVERY, f"No helper archetype {helper_type!r} in catalog", Severity.WARNING)
            return None

        unknown = sorted(a for a in archetype.abilities if a not in self._ability_handlers)
        if unknown:
            self.log(EventCategory.HELPER, f"{archetype.name} has unknown abilities {unknown}", Severity.WARNING)

        b = self.balance
        helper = Helper(
            id=f"helper_{ordinal + 1}",
            type=helper_type,
            name=archetype.name,
            abilities=archetype.abilities,
            efficiency=min(1.0, b.helper_base_efficiency + b.helper_efficiency_step * ordinal),
            discovered_at_tick=gs.tick,
            discovered_day=gs.clock.day,
        )
        gs.helpers.append(helper)
        gs.metrics.helper_discovery_days.setdefault(helper_type, gs.clock.day)
        self.log(EventCategory.DISCOVERY,
                 f"Discovered {helper.name}! Abilities: {', '.join(sorted(helper.abilities))}",
                 Severity.MAJOR)
        return helper

    def process_helpers(self):
        for helper in list(self.gs.helpers):
            for ability in sorted(helper.abilities):
                handler = self._ability_handlers.get(ability)
                if handler is not None:
                    handler(helper)

    def _auto_harvest(self, helper: Helper):
        for plot in self.ready_plots():
            if self.rng.random() < helper.efficiency:
                self.harvest_crop(plot.id, actor=helper.name)

    def _auto_plant(self, helper: Helper):
        for plot in self.empty_plots():
            if self.rng.random() < helper.efficiency * self.balance.auto_plant_factor:
                crop = self.choose_crop(helper.efficiency)
                if crop is not None:
                    self.plant(plot.id, crop.id)

    def _auto_water(self, helper: Helper):
        for plot in self.gs.plots:
            if plot.is_empty or plot.watered or self.gs.water_tank.current < 1:
                continue
            if self.rng.random() < helper.efficiency:
                self.water_plot(plot.id)

    def _auto_adventure(self, helper: Helper):
        b = self.balance
        if self.hero_busy or self.gs.resources.energy.current < b.auto_adventure_min_energy:
            return
        if self.rng.random() < helper.efficiency * b.auto_adventure_factor:
            choice = self.choose_adventure(helper.efficiency * b.auto_adventure_choice_factor)
            if choice is not None:
                self.start_adventure(*choice)

    def _auto_mine(self, helper: Helper):
        b = self.balance
        if self.hero_busy or self.gs.resources.energy.current < b.auto_mine_min_energy:
            return
        if self.rng.random() < helper.efficiency * b.auto_mine_factor:
            depth = min(b.auto_mine_max_depth, self.gs.clock.day // b.auto_mine_days_per_depth + 1)
            self.start_mining(depth, duration=b.auto_mine_duration)

    # ==================== Upgrades ====================

    def is_upgrade_available(self, upgrade_id: str) -> bool:
        upgrade = self.values.upgrade(upgrade_id)
        if upgrade is None or upgrade_id in self.gs.owned_upgrades:
            return False
        if self.gs.clock.day < upgrade.unlock_day:
            return False
        if self.settings.enforce_prerequisites:
            return check_prerequisites(upgrade.prerequisite, self.gs).can_purchase
        return True

    def can_afford_upgrade(self, upgrade_id: str) -> bool:
        upgrade = self.values.upgrade(upgrade_id)
        return upgrade is not None and self.can_spend(upgrade.cost.as_dict())

    def purchase_upgrade(self, upgrade_id: str) -> bool:
        gs = self.gs
        upgrade = self.values.upgrade(upgrade_id)
        if upgrade is None:
            return self._reject(EventCategory.UPGRADE, f"Unknown upgrade {upgrade_id!r}")
        if not self.is_upgrade_available(upgrade_id):
            return self._reject(EventCategory.UPGRADE, f"{upgrade.name} is not available")
        if not self.spend_all(upgrade.cost.as_dict()):
            return self._reject(EventCategory.UPGRADE, f"Cannot afford {upgrade.name}")

        gs.owned_upgrades.append(upgrade.id)
        gs.metrics.upgrade_timings[upgrade.id] = (gs.clock.day, gs.tick)
        gs.metrics.upgrades_purchased += 1
        self.apply_upgrade_effect(upgrade.effect)
        self.log(EventCategory.UPGRADE, f"Purchased {upgrade.name} ({upgrade.cost.gold:.0f} gold)", Severity.MAJOR)
        return True

    def apply_upgrade_effect(self, effect: str) -> bool:
        if not effect:
            return True
        gs = self.gs

        entry = EFFECTS.get(effect)
        if entry is not None:
            target, value = entry
            if target == 'energy_cap':
                gs.resources.energy.cap = max(gs.resources.energy.cap, value)
            elif target == 'water_cap':
                gs.water_tank.max = max(gs.water_tank.max, value)
            elif target == 'carry_capacity':
                gs.carry_capacity = max(gs.carry_capacity, value)
            elif target == 'tower_floors':
                gs.tower_floors = max(gs.tower_floors, value)
            elif target == 'plots':
                next_id = max((p.id for p in gs.plots), default=0) + 1
                gs.plots.extend(Plot(next_id + i) for i in range(value))
            return True

        granted = granted_reference(effect)
        if granted is not None:
            kind, token = granted
            {'farm_stage': gs.farm_stages, 'tool': gs.tools, 'building': gs.buildings}[kind].add(token)
            return True

        self.log(EventCategory.UPGRADE, f"Unknown upgrade effect {effect!r}; ignored", Severity.WARNING)
        return False

    def upgrade_priority(self, upgrade) -> float:
        """Strategy weight for the category minus a log-cost term (higher first)"""
        weights = self.balance.strategy_weights.get(self.profile.upgrade_strategy.value, {})
        return (weights.get(upgrade.category, 0.0)
                - self.balance.upgrade_cost_weight * math.log10(upgrade.cost.gold + 1))

    def rank_upgrades(self) -> list:
        candidates = [u for u in self.values.upgrades.values()
                      if self.is_upgrade_available(u.id) and self.can_spend(u.cost.as_dict())]
        return sorted(candidates, key=self.upgrade_priority, reverse=True)

    def income_rates(self) -> Dict[str, float]:
        """Gold and energy earned per hour over the run so far"""
        hours = self.gs.tick / 60
        if hours <= 0:
            return {'gold': 0.0, 'energy': 0.0}
        m = self.gs.metrics
        return {'gold': m.gold_earned / hours, 'energy': m.energy_generated / hours}

    def upgrade_recommendations(self, limit: int = 10) -> list:
        """Available upgrades worth saving for, best first (see recommend_upgrades)"""
        resources = {kind: self.resource_amount(kind) for kind in ('gold', 'energy') + MATERIALS}
        candidates = [uid for uid in self.values.upgrades if self.is_upgrade_available(uid)]
        return recommend_upgrades(DependencyGraph.build(self.values), candidates, resources,
                                  self.income_rates(), limit)

    def consider_upgrade(self, efficiency: float) -> Optional[str]:
        ranked = self.rank_upgrades()
        if not ranked:
            return None
        best = ranked[0]
        if self.rng.random() < efficiency * self.balance.upgrade_purchase_factor:
            if self.purchase_upgrade(best.id):
                return best.id
        return None

    # ==================== Phase Machine ====================

    def check_phase_transition(self) -> bool:
        """Advance at most one phase if its gate is open"""
        gs = self.gs
        index = gs.phase_index
        if index >= len(PHASES) - 1:
            return False

        next_phase = PHASES[index + 1]
        gate = next((t for t in self.balance.phase_thresholds if t.phase == next_phase), None)
        if gate is None:
            return False
        if gs.active_plots >= gate.active_plots or gs.clock.day >= gate.day:
            self._enter_phase(next_phase)
            return True
        return False

    def _enter_phase(self, phase: str):
        gs = self.gs
        exited = gs.phase
        metrics = gs.metrics
        metrics.phase_durations[exited] = gs.tick - gs.phase_started_at_tick
        metrics.phase_transition_days[phase] = gs.clock.day
        metrics.phase_transition_ticks[phase] = gs.tick
        gs.phase = phase
        gs.phase_started_at_tick = gs.tick
        self.log(EventCategory.PROGRESSION,
                 f"Phase {exited} -> {phase} after {metrics.phase_durations[exited]} minutes",
                 Severity.MAJOR)

    # ==================== Player Policy ====================

    def _session_clock(self) -> Tuple[int, bool]:
        """(hour, is_weekend) used to match check-in windows"""
        if self.settings.session_clock == 'wall_clock':
            now = self.wall_clock()
            return now.hour, now.weekday() >= 5
        return self.gs.clock.hour, (self.gs.clock.day - 1) % 7 >= 5

    def check_player_session(self) -> Optional[SessionSlot]:
        hour, weekend = self._session_clock()
        window = self.balance.session_hour_window
        for slot in self.profile.schedule_for(weekend):
            if abs(hour - slot.hour) <= window and self.rng.random() < slot.probability:
                return slot
        return None

    def start_session(self, slot: SessionSlot):
        gs = self.gs
        gs.session = Session(
            slot=slot,
            started_at_tick=gs.tick,
            ends_at_tick=gs.tick + slot.duration,
            next_decision_tick=gs.tick,
        )
        gs.metrics.sessions_started += 1
        self.log(EventCategory.PLAYER, f"Player checked in for {slot.duration} min")

    def end_session(self, reason: str):
        session = self.gs.session
        if session is None:
            return
        self.gs.session = None
        self.log(EventCategory.PLAYER,
                 f"Session ended ({reason}) after {session.iterations} decisions, {session.actions} actions")

    def run_player_policy(self):
        """Start a session at a check-in point, or take the next in-session decision"""
        if not self.settings.autoplay:
            return
        gs = self.gs

        if gs.session is None:
            if gs.clock.minute % self.balance.session_check_interval != 0:
                return
            slot = self.check_player_session()
            if slot is None:
                return
            self.start_session(slot)

        session = gs.session
        if gs.tick >= session.ends_at_tick:
            self.end_session('time up')
            return
        gs.metrics.session_minutes += 1
        if gs.tick < session.next_decision_tick:
            return

        efficiency = self.profile.efficiency_for(gs.phase)
        performed = self.perform_session_actions(efficiency)
        session.iterations += 1
        if not performed:
            self.end_session('nothing to do')
            return
        session.actions += performed
        session.next_decision_tick = gs.tick + math.ceil(1 / max(efficiency, 0.01))

    def perform_session_actions(self, efficiency: float) -> int:
        """One decision pass; returns the number of actions taken"""
        gs = self.gs
        b = self.balance
        performed = 0

        harvested = 0
        for plot in self.ready_plots():
            if harvested >= gs.carry_capacity:
                break
            if self.rng.random() < efficiency and self.harvest_crop(plot.id):
                harvested += 1
        performed += harvested

        empty = self.empty_plots()
        if empty and self.rng.random() < efficiency * b.plant_factor:
            crop = self.choose_crop(efficiency)
            if crop is not None and self.plant(empty[0].id, crop.id):
                performed += 1

        if (gs.resources.energy.current > b.adventure_min_energy and not self.hero_busy
                and self.rng.random() < efficiency * b.adventure_factor):
            choice = self.choose_adventure(efficiency)
            if choice is not None and self.start_adventure(*choice):
                performed += 1

        if (gs.resources.energy.current > b.mine_min_energy and not self.hero_busy
                and self.rng.random() < efficiency * b.mine_factor):
            depth = min(b.player_max_depth, gs.clock.day // b.player_days_per_depth + 1)
            if self.start_mining(depth):
                performed += 1

        if self.rng.random() < efficiency * b.upgrade_consider_factor:
            if self.consider_upgrade(efficiency):
                performed += 1

        gs.metrics.player_actions += performed
        return performed

    def choose_adventure(self, efficiency: float) -> Optional[Tuple[str, str]]:
        """Latest unlocked route first; preferred length if affordable, else short"""
        gs = self.gs
        energy = gs.resources.energy.current
        unlocked = [a for a in self.values.adventures.values() if a.unlock_day <= gs.clock.day]

        for adventure in reversed(unlocked):
            duration = self.profile.adventure_preference
            if duration == 'long' and self.rng.random() > self.profile.risk_tolerance:
                duration = 'medium'
            tier = adventure.tier(duration)
            if tier is None or tier.energy > energy:
                duration = 'short'
                tier = adventure.tier(duration)
                if tier is None or tier.energy > energy:
                    continue
            if self.rng.random() < efficiency:
                return adventure.id, duration
        return None

    # ==================== Tick ====================

    def tick(self) -> bool:
        """Advance exactly one simulated minute

        Returns:
            False if the run has stopped or failed (no tick was applied)
        """
        gs = self.gs
        if gs.failed or gs.stopped:
            return False
        try:
            gs.tick += 1
            gs.clock.advance(1)
            self.update_farm_growth()
            self.generate_farm_energy()
            self.process_hero_action()
            if self.settings.helpers_enabled:
                self.process_helpers()
            self.refill_water()
            self.check_phase_transition()
            if self.settings.helpers_enabled and gs.clock.minute % self.balance.discovery_interval == 0:
                self.check_helper_discovery()
            self.run_player_policy()
            self.enforce_caps()
            self._record_tick()
        except Exception as exc:
            logger.exception("Tick %d failed (seed=%s)", gs.tick, self._seed)
            gs.failed = True
            gs.error = f"{type(exc).__name__}: {exc}"
            self.log(EventCategory.SIMULATION, f"Simulation failed: {gs.error}", Severity.ERROR)
            return False
        return True

    def _record_tick(self):
        gs = self.gs
        location_time = gs.metrics.location_time
        location_time[gs.hero_location] = location_time.get(gs.hero_location, 0) + 1

        if gs.clock.minute == 0:
            snapshot = self.snapshot()
            gs.resource_history.append(snapshot)
            if self.on_snapshot is not None:
                self.on_snapshot(snapshot)
            energy = gs.resources.energy
            self.log(EventCategory.TIME,
                     f"{gs.clock.label()} | energy {energy.current:.0f}/{energy.cap:.0f} | "
                     f"gold {gs.resources.gold:.0f} | phase {gs.phase}")

    # ==================== Run Control ====================

    def is_finished(self) -> bool:
        gs = self.gs
        if gs.failed or gs.stopped:
            return True
        if self.settings.max_ticks is not None and gs.tick >= self.settings.max_ticks:
            return True
        return gs.clock.day > self.max_days

    def pause(self):
        self._running.clear()

    def resume(self):
        self._running.set()

    def stop(self):
        """Ask the run loop to halt at the next tick boundary"""
        self._stop.set()
        self._running.set()

    def run(self, max_days: Optional[int] = None, speed='max', deadline: Optional[float] = None) -> RunStatus:
        """Tick until finished, stopped, or past `deadline` (time.monotonic())

        Args:
            max_days: override settings.max_days for this run
            speed: 1, 10, 100 or 'max'; only affects wall-clock pacing
            deadline: optional monotonic-clock time after which the run is abandoned

        Returns:
            RunStatus for the run
        """
        if speed not in SPEEDS:
            raise ValueError(f"unknown speed {speed!r}; expected one of {list(SPEEDS)}")
        if max_days is not None:
            self.max_days = max_days
        delay = SPEEDS[speed]

        while not self.is_finished():
            self._running.wait()
            if self._stop.is_set():
                self.gs.stopped = True
                self.log(EventCategory.SIMULATION, f"Simulation stopped at {self.gs.clock.label()}",
                         Severity.WARNING)
                return RunStatus.STOPPED
            if deadline is not None and time.monotonic() > deadline:
                self.log(EventCategory.SIMULATION, "Wall-clock budget exhausted", Severity.WARNING)
                return RunStatus.TIMED_OUT
            if not self.tick():
                break
            if delay:
                time.sleep(delay)

        if self.gs.failed:
            return RunStatus.FAILED
        if self.gs.stopped:
            return RunStatus.STOPPED
        self.log(EventCategory.SIMULATION, f"Simulation complete at {self.gs.clock.label()}", Severity.MAJOR)
        return RunStatus.COMPLETED

    # ==================== Results ====================

    def snapshot(self) -> GameSnapshot:
        gs = self.gs
        action = gs.hero_action
        return GameSnapshot(
            tick=gs.tick,
            day=gs.clock.day,
            hour=gs.clock.hour,
            minute=gs.clock.minute,
            phase=gs.phase,
            energy=gs.resources.energy.current,
            energy_cap=gs.resources.energy.cap,
            gold=gs.resources.gold,
            materials=ReadOnlyMap(gs.resources.materials),
            water=gs.water_tank.current,
            water_max=gs.water_tank.max,
            carry_capacity=gs.carry_capacity,
            tower_floors=gs.tower_floors,
            plots=tuple(PlotSnapshot(p.id, p.crop, p.growth_stage, p.watered, p.planted_at_tick)
                        for p in gs.plots),
            hero_action=ReadOnlyMap(asdict(action)) if action else None,
            hero_location=gs.hero_location,
            helpers=tuple(gs.helpers),
            owned_upgrades=tuple(gs.owned_upgrades),
            tools=frozenset(gs.tools),
            farm_stages=frozenset(gs.farm_stages),
            buildings=frozenset(gs.buildings),
        )

    def result(self) -> RunResult:
        """Freeze the run into a RunResult (with bottlenecks)

        Raises:
            SimulationFailed: if the run hit a fatal error
        """
        gs = self.gs
        if gs.failed:
            raise SimulationFailed(gs.error or "simulation failed")
        result = RunResult(
            seed=self._seed,
            status=RunStatus.STOPPED if gs.stopped else RunStatus.COMPLETED,
            snapshot=self.snapshot(),
            metrics=gs.metrics.freeze(),
            events=tuple(gs.event_log),
            max_days=self.max_days,
            profile=ReadOnlyMap(self.profile.summary()),
        )
        return replace(result, bottlenecks=detect_bottlenecks(result))


# ==================== Public API ====================

@dataclass(frozen=True)
class RunOutcome:
    """What the orchestrator gets back for one run"""
    seed: Optional[int]
    status: RunStatus
    result: Optional[RunResult]
    error: Optional[str] = None
    wall_time: float = 0.0


def new_game(seed: Optional[int] = None, settings: Optional[SimulationSettings] = None,
             game_values: Optional[GameConfiguration] = None,
             profile: Optional[PlayerProfile] = None) -> Engine:
    """Create a new game instance

    Args:
        seed: Random seed for reproducibility
        settings: Simulation settings (days, log level, session clock, balance)
        game_values: Catalogs; the built-in catalog when omitted
        profile: Player behaviour; PlayerProfile.default() when omitted

    Returns:
        Engine instance at day 1, 08:00
    """
    return Engine(settings=settings, seed=seed, game_values=game_values, profile=profile)


def step_tick(engine: Engine, ticks: int = 1) -> Engine:
    """Advance the game by `ticks` minutes (stops early if the run ends)"""
    for _ in range(ticks):
        if engine.is_finished() or not engine.tick():
            break
    return engine


def is_finished(engine: Engine) -> bool:
    return engine.is_finished()


def get_results(engine: Engine) -> dict:
    """Flat summary of the current game

    Args:
        engine: Engine instance (finished or not)

    Returns:
        Dictionary with clock, resources, progression and flow totals
    """
    gs = engine.gs
    m = gs.metrics
    return {
        'day': gs.clock.day,
        'tick': gs.tick,
        'phase': gs.phase,
        'energy': gs.resources.energy.current,
        'energy_cap': gs.resources.energy.cap,
        'gold': gs.resources.gold,
        'materials': dict(gs.resources.materials),
        'active_plots': gs.active_plots,
        'total_plots': len(gs.plots),
        'helpers': [h.type for h in gs.helpers],
        'upgrades': list(gs.owned_upgrades),
        'energy_generated': m.energy_generated,
        'energy_spent': m.energy_spent,
        'energy_wasted': m.energy_wasted,
        'failed': gs.failed,
        'error': gs.error,
    }


def run_one_simulation(seed: int, settings: Optional[SimulationSettings] = None,
                       game_values: Optional[GameConfiguration] = None,
                       profile: Optional[PlayerProfile] = None, stop_event=None,
                       timeout: Optional[float] = None) -> RunOutcome:
    """Run a single headless simulation to its day budget

    Args:
        seed: Random seed for reproducibility
        settings: Optional simulation settings
        game_values: Optional catalogs (e.g. a Monte Carlo variant)
        profile: Optional player profile (e.g. a Monte Carlo variant)
        stop_event: Shared event; when set the run halts at the next tick boundary
        timeout: Wall-clock budget in seconds

    Returns:
        RunOutcome; result is None unless the run completed or was stopped
    """
    started = time.perf_counter()
    engine = Engine(settings=settings, seed=seed, game_values=game_values, profile=profile,
                    stop_event=stop_event)
    deadline = time.monotonic() + timeout if timeout else None
    status = engine.run(deadline=deadline)
    elapsed = time.perf_counter() - started

    if status in (RunStatus.FAILED, RunStatus.TIMED_OUT):
        error = engine.gs.error if status is RunStatus.FAILED else f"exceeded {timeout}s budget"
        return RunOutcome(seed=seed, status=status, result=None, error=error, wall_time=elapsed)
    return RunOutcome(seed=seed, status=status, result=engine.result(), wall_time=elapsed)
