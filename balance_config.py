"""
Balance configuration for the Time Hero economy simulation
"""
from dataclasses import dataclass, field
from typing import Dict, Tuple


PHASES = ('tutorial', 'early', 'mid', 'late', 'endgame')


@dataclass(frozen=True)
class DiscoveryTier:
    """Pity-adjusted discovery parameters for one helpers-found bracket"""
    plot_threshold: int
    per_plot_bonus: float
    day_threshold: int
    per_day_bonus: float
    cap: float


@dataclass(frozen=True)
class PhaseThreshold:
    """Disjunctive gate into `phase`: active plots OR day reached"""
    phase: str
    active_plots: int
    day: int


@dataclass(frozen=True)
class PhaseTarget:
    """Design window (in days) for how long a phase should last"""
    min_days: float
    max_days: float


@dataclass(frozen=True)
class ScreenTimeTarget:
    """Healthy share (percent of total time) spent at a location"""
    min_pct: float
    max_pct: float


DEFAULT_DISCOVERY_TIERS = (
    DiscoveryTier(plot_threshold=15, per_plot_bonus=0.02, day_threshold=3, per_day_bonus=0.05, cap=0.15),
    DiscoveryTier(plot_threshold=40, per_plot_bonus=0.01, day_threshold=10, per_day_bonus=0.02, cap=0.08),
    DiscoveryTier(plot_threshold=70, per_plot_bonus=0.005, day_threshold=20, per_day_bonus=0.01, cap=0.03),
)

DEFAULT_PHASE_THRESHOLDS = (
    PhaseThreshold('early', active_plots=3, day=1),
    PhaseThreshold('mid', active_plots=10, day=3),
    PhaseThreshold('late', active_plots=25, day=8),
    PhaseThreshold('endgame', active_plots=50, day=15),
)


def _default_strategy_weights() -> Dict[str, Dict[str, float]]:
    # Points added to an upgrade's priority per category (higher = preferred)
    return {
        'storage_focused': {'storage': 50.0, 'water': 30.0},
        'production_focused': {'hero': 40.0, 'tower': 30.0},
        'balanced': {'storage': 20.0, 'hero': 15.0, 'water': 10.0},
    }


@dataclass(frozen=True)
class BalanceConstants:
    """Game-balance constants (tuned from playtests)"""
    # Adventure drops
    rare_drop_chance: float = 0.50   # medium/long only
    boss_drop_chance: float = 0.25   # long only

    # Mining
    mining_cost_base: float = 10.0
    mining_cost_exponent: float = 1.5
    mining_gold_base: float = 50.0
    mining_gold_exponent: float = 1.2
    mining_stone_per_depth: float = 2.0
    copper_min_depth: int = 5
    copper_chance: float = 0.30
    iron_min_depth: int = 10
    iron_chance: float = 0.20
    default_mining_duration: int = 30

    # Helper discovery
    discovery_interval: int = 5  # minutes
    discovery_tiers: Tuple[DiscoveryTier, ...] = DEFAULT_DISCOVERY_TIERS
    helper_base_efficiency: float = 0.8
    helper_efficiency_step: float = 0.1

    # Helper automation
    auto_plant_factor: float = 0.3
    auto_adventure_min_energy: float = 200.0
    auto_adventure_factor: float = 0.1
    auto_adventure_choice_factor: float = 0.8
    auto_mine_min_energy: float = 300.0
    auto_mine_factor: float = 0.05
    auto_mine_max_depth: int = 3
    auto_mine_days_per_depth: int = 5
    auto_mine_duration: int = 20

    # Phase machine
    phase_thresholds: Tuple[PhaseThreshold, ...] = DEFAULT_PHASE_THRESHOLDS

    # Player policy
    session_check_interval: int = 10  # minutes
    session_hour_window: int = 1
    plant_factor: float = 0.8
    adventure_min_energy: float = 50.0
    adventure_factor: float = 0.6
    mine_min_energy: float = 100.0
    mine_factor: float = 0.4
    player_max_depth: int = 5
    player_days_per_depth: int = 3
    upgrade_consider_factor: float = 0.3
    upgrade_purchase_factor: float = 0.8
    upgrade_cost_weight: float = 5.0
    strategy_weights: Dict[str, Dict[str, float]] = field(default_factory=_default_strategy_weights)

    # Ledger / farm housekeeping
    cap_warning_interval: int = 10  # minutes between overflow warnings
    water_refill_interval: int = 10  # minutes per unit of water


BALANCE = BalanceConstants()


@dataclass(frozen=True)
class AnalyzerThresholds:
    """Thresholds for bottleneck detection"""
    waste_ratio: float = 0.2
    low_energy_pct: float = 10.0
    spare_plot_ratio: float = 0.8
    plot_capacity_ratio: float = 0.9
    spare_gold: float = 1000.0
    low_material_amount: float = 5.0
    low_material_types: int = 2  # flagged when MORE than this many run low
    material_check_day: int = 7
    helper_active_plots: int = 15
    helper_check_day: int = 5
    # Last day (inclusive) each phase is expected to still be running
    expected_phase_days: Tuple[int, ...] = (1, 5, 12, 20)


ANALYZER_THRESHOLDS = AnalyzerThresholds()


PHASE_TARGETS: Dict[str, PhaseTarget] = {
    'tutorial': PhaseTarget(min_days=1 / 24, max_days=4 / 24),  # 1-4 hours
    'early': PhaseTarget(min_days=1, max_days=5),
    'mid': PhaseTarget(min_days=3, max_days=8),
    'late': PhaseTarget(min_days=5, max_days=12),
    'endgame': PhaseTarget(min_days=10, max_days=25),
}

SCREEN_TIME_TARGETS: Dict[str, ScreenTimeTarget] = {
    'home': ScreenTimeTarget(25, 45),
    'adventure': ScreenTimeTarget(20, 45),
    'mine': ScreenTimeTarget(5, 20),
    'forge': ScreenTimeTarget(3, 15),
    'tower': ScreenTimeTarget(3, 15),
    'town': ScreenTimeTarget(5, 20),
}


@dataclass(frozen=True)
class VarianceConfig:
    """Monte Carlo perturbation strengths (fraction of the base value)"""
    # Game RNG
    crop_growth: float = 0.1
    helper_discovery: float = 0.3
    material_drop: float = 0.2
    adventure_reward: float = 0.15

    # Player behaviour
    check_in_timing: float = 0.2
    session_length: float = 0.3
    efficiency: float = 0.1

    @staticmethod
    def none():
        return VarianceConfig(0.0, 0.0, 0.0, 0.0, 0.0, 0.0, 0.0)


DEFAULT_VARIANCE = VarianceConfig()
