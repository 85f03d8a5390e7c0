"""
Monte Carlo Balance Runner
==========================
Runs many seeded, perturbed copies of the Time Hero simulation in parallel and
aggregates the outcomes into distributions, confidence intervals and insights.

Every run gets its own variant of the catalogs, balance constants and player
profile, derived only from (base_seed, run_index): rerunning a config gives
the same variants.
"""

import logging
import math
import multiprocessing
import os
import threading
import time
from concurrent.futures import Future, ProcessPoolExecutor, ThreadPoolExecutor, as_completed
from dataclasses import asdict, dataclass, field, replace
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from analytics import summarize_bottlenecks
from balance_config import DEFAULT_VARIANCE, PHASES, BalanceConstants, VarianceConfig
from engine import (HELPER_CYCLE, HELPER_ORDER, RunOutcome, RunStatus, SimulationSettings, clamp,
                    run_one_simulation)
from game_values import MATERIALS, GameConfiguration, ReadOnlyMap, default_game_values
from player_profile import PlayerProfile

logger = logging.getLogger(__name__)

EXECUTORS = ('thread', 'process', 'serial')
HELPER_TYPES = HELPER_ORDER + HELPER_CYCLE
HIGH_VARIANCE_CV = 0.5

# Independent random streams per (base_seed, run_index)
CATALOG_STREAM = 0
PROFILE_STREAM = 1
BALANCE_STREAM = 2


# ==================== Configuration ====================

def _default_workers() -> int:
    return min(os.cpu_count() or 1, 8)


def _default_run_settings() -> SimulationSettings:
    return SimulationSettings(session_clock='simulated', log_level='minimal')


@dataclass
class MonteCarloConfig:
    """Configuration for a batch of Monte Carlo runs"""
    runs: int = 100
    max_workers: int = field(default_factory=_default_workers)
    executor: str = 'thread'  # thread / process / serial
    base_seed: int = 42
    max_days: int = 28
    timeout_per_run: float = 300.0  # seconds, advisory
    confidence_level: float = 0.95
    variance: VarianceConfig = DEFAULT_VARIANCE
    settings: SimulationSettings = field(default_factory=_default_run_settings)

    def __post_init__(self):
        if self.runs < 1:
            raise ValueError(f"runs must be >= 1, got {self.runs}")
        if self.executor not in EXECUTORS:
            raise ValueError(f"executor must be one of {EXECUTORS}, got {self.executor!r}")
        if not 0.0 < self.confidence_level < 1.0:
            raise ValueError(f"confidence_level must be in (0, 1), got {self.confidence_level}")

    @staticmethod
    def quick(runs: int = 10, max_days: int = 3):
        """Small serial batch for smoke tests"""
        return MonteCarloConfig(runs=runs, max_days=max_days, executor='serial', max_workers=1)

    def as_dict(self) -> dict:
        return {
            'runs': self.runs,
            'max_workers': self.max_workers,
            'executor': self.executor,
            'base_seed': self.base_seed,
            'max_days': self.max_days,
            'timeout_per_run': self.timeout_per_run,
            'confidence_level': self.confidence_level,
            'variance': asdict(self.variance),
            'session_clock': self.settings.session_clock,
        }


@dataclass
class SimulationProgress:
    """Track Monte Carlo simulation progress"""
    total: int = 0
    completed: int = 0
    failed: int = 0
    timed_out: int = 0
    stopped: int = 0
    cancelled: bool = False
    start_time: float = 0

    @property
    def finished(self) -> int:
        return self.completed + self.failed + self.timed_out + self.stopped

    def progress_pct(self):
        return self.finished / self.total if self.total > 0 else 0.0

    def elapsed_time(self):
        return time.time() - self.start_time

    def eta(self):
        pct = self.progress_pct()
        if pct <= 0:
            return 0
        elapsed = self.elapsed_time()
        return elapsed * (1.0 / pct - 1.0)

    def as_dict(self) -> dict:
        return {
            'total': self.total,
            'completed': self.completed,
            'failed': self.failed,
            'timed_out': self.timed_out,
            'stopped': self.stopped,
            'cancelled': self.cancelled,
            'percentage': self.progress_pct() * 100,
            'elapsed': self.elapsed_time(),
            'eta': self.eta(),
        }


# ==================== Variants ====================

def _variant_rng(base_seed: int, run_index: int, stream: int) -> np.random.Generator:
    return np.random.default_rng([base_seed, run_index, stream])


def _jitter(rng: np.random.Generator, value: float, variance: float) -> float:
    return value * (1 + (rng.random() - 0.5) * variance * 2)


def generate_variant_game_values(base: GameConfiguration, run_index: int,
                                 variance: VarianceConfig = DEFAULT_VARIANCE,
                                 base_seed: int = 42) -> GameConfiguration:
    """Perturbed copy of the catalogs for one run (base is left untouched)"""
    rng = _variant_rng(base_seed, run_index, CATALOG_STREAM)

    crops = {}
    for cid, crop in base.crops.items():
        growth = max(1.0, round(_jitter(rng, crop.growth_time, variance.crop_growth)))
        crops[cid] = replace(crop, growth_time=growth)

    def vary_amount(amount):
        if not amount:
            return amount
        return max(1, int(round(_jitter(rng, amount, variance.material_drop))))

    adventures = {}
    for aid, adventure in base.adventures.items():
        adventures[aid] = replace(
            adventure,
            gold_reward=max(0.0, round(_jitter(rng, adventure.gold_reward, variance.adventure_reward))),
            common_amount=vary_amount(adventure.common_amount),
            rare_amount=vary_amount(adventure.rare_amount),
            boss_amount=vary_amount(adventure.boss_amount),
        )

    return base.with_catalogs(crops=crops, adventures=adventures)


def generate_variant_profile(base: PlayerProfile, run_index: int,
                             variance: VarianceConfig = DEFAULT_VARIANCE,
                             base_seed: int = 42) -> PlayerProfile:
    """Perturbed copy of a player profile: check-in times, session lengths, efficiency"""
    rng = _variant_rng(base_seed, run_index, PROFILE_STREAM)

    def vary_slot(slot):
        # Shift by up to +/- (variance * 60) minutes
        shift = (rng.random() - 0.5) * variance.check_in_timing * 2 * 60
        minute_of_day = int(clamp(round(slot.minute_of_day + shift), 0, 24 * 60 - 1))
        hour, minute = divmod(minute_of_day, 60)
        duration = max(1, int(round(_jitter(rng, slot.duration, variance.session_length))))
        return replace(slot, hour=hour, minute=minute, duration=duration)

    weekday = tuple(vary_slot(s) for s in base.weekday_schedule)
    weekend = tuple(vary_slot(s) for s in base.weekend_schedule)
    efficiency = {phase: clamp(_jitter(rng, value, variance.efficiency), 0.1, 1.0)
                  for phase, value in base.efficiency.items()}

    return replace(base, weekday_schedule=weekday, weekend_schedule=weekend,
                   efficiency=ReadOnlyMap(efficiency))


def generate_variant_balance(base: BalanceConstants, run_index: int,
                             variance: VarianceConfig = DEFAULT_VARIANCE,
                             base_seed: int = 42) -> BalanceConstants:
    """Perturb helper-discovery bonuses (caps stay fixed)"""
    rng = _variant_rng(base_seed, run_index, BALANCE_STREAM)
    tiers = tuple(
        replace(tier,
                per_plot_bonus=max(0.0, _jitter(rng, tier.per_plot_bonus, variance.helper_discovery)),
                per_day_bonus=max(0.0, _jitter(rng, tier.per_day_bonus, variance.helper_discovery)))
        for tier in base.discovery_tiers
    )
    return replace(base, discovery_tiers=tiers)


# ==================== Statistics ====================

def calc_stats(values) -> Optional[dict]:
    """Distribution summary of a list of numbers (population std)"""
    if values is None or len(values) == 0:
        return None
    arr = np.asarray(values, dtype=float)
    std = float(np.std(arr))
    flat = std == 0.0
    return {
        'count': len(arr),
        'mean': float(np.mean(arr)),
        'median': float(np.median(arr)),
        'std': std,
        'skew': float(stats.skew(arr)) if len(arr) > 2 and not flat else 0.0,
        'kurtosis': float(stats.kurtosis(arr)) if len(arr) > 3 and not flat else 0.0,
        'min': float(np.min(arr)),
        'max': float(np.max(arr)),
        'p5': float(np.percentile(arr, 5)),
        'p10': float(np.percentile(arr, 10)),
        'p25': float(np.percentile(arr, 25)),
        'p50': float(np.percentile(arr, 50)),
        'p75': float(np.percentile(arr, 75)),
        'p90': float(np.percentile(arr, 90)),
        'p95': float(np.percentile(arr, 95)),
    }


def z_score(confidence_level: float) -> float:
    """Two-sided normal critical value, rounded to 2 dp (0.95 -> 1.96)"""
    return round(float(stats.norm.ppf(0.5 + confidence_level / 2)), 2)


def confidence_interval(values, confidence_level: float = 0.95) -> Optional[dict]:
    if values is None or len(values) == 0:
        return None
    arr = np.asarray(values, dtype=float)
    n = len(arr)
    mean = float(np.mean(arr))
    z = z_score(confidence_level)
    margin = z * float(np.std(arr)) / math.sqrt(n)
    return {
        'mean': mean,
        'lower': mean - margin,
        'upper': mean + margin,
        'margin': margin,
        'z': z,
        'confidence_level': confidence_level,
        'n': n,
    }


def run_metrics(result) -> Dict[str, float]:
    """Flatten one RunResult into the tracked per-run metrics"""
    snap = result.snapshot
    m = result.metrics
    row = {'seed': result.seed}

    for phase in PHASES:
        row[f'phase_transition_day.{phase}'] = m.phase_transition_days.get(phase, np.nan)

    row['final.day'] = snap.day
    row['final.phase_index'] = snap.phase_index
    row['final.energy'] = snap.energy
    row['final.energy_cap'] = snap.energy_cap
    row['final.gold'] = snap.gold
    for material in MATERIALS:
        row[f'final.{material}'] = snap.materials.get(material, 0.0)

    for helper_type in HELPER_TYPES:
        row[f'helper_discovery_day.{helper_type}'] = m.helper_discovery_days.get(helper_type, np.nan)

    row['total.helpers'] = len(snap.helpers)
    row['total.upgrades'] = len(snap.owned_upgrades)
    row['total.plots'] = snap.total_plots
    row['total.energy_generated'] = m.energy_generated
    row['total.energy_spent'] = m.energy_spent
    row['total.energy_wasted'] = m.energy_wasted
    row['total.adventures'] = m.adventures_completed
    row['total.mining_trips'] = m.mining_trips_completed
    row['total.crops_harvested'] = m.crops_harvested
    row['total.sessions'] = m.sessions_started
    row['waste_ratio'] = m.energy_wasted / (m.energy_generated + 1)
    return row


def build_metrics_frame(results: Sequence) -> pd.DataFrame:
    """One row per completed run, one column per tracked metric"""
    return pd.DataFrame([run_metrics(r) for r in results])


def generate_insights(distributions: Dict[str, dict], bottleneck_summary: Dict[str, dict],
                      success_rate: float) -> List[dict]:
    insights = []

    for column, dist in distributions.items():
        if not column.startswith('phase_transition_day.') or not dist or dist['mean'] <= 0:
            continue
        cv = dist['std'] / dist['mean']
        if cv > HIGH_VARIANCE_CV:
            phase = column.split('.', 1)[1]
            insights.append({
                'type': 'high_variance',
                'phase': phase,
                'message': f"{phase} phase transition time is highly variable (CV: {cv:.2f})",
                'severity': 'warning',
            })

    for kind, data in bottleneck_summary.items():
        if data['pct_of_runs'] > 50:
            insights.append({
                'type': 'common_bottleneck',
                'bottleneck': kind,
                'message': f"{kind} bottleneck in {data['pct_of_runs']:.0f}% of runs",
                'severity': 'warning' if data['severity'] != 'high' else 'error',
            })

    if success_rate < 90:
        insights.append({
            'type': 'low_success_rate',
            'message': f"Only {success_rate:.1f}% of runs completed",
            'severity': 'error',
        })
    return insights


def generate_recommendations(metadata: dict, success_rate: float, insights: List[dict]) -> List[dict]:
    recommendations = [{
        'type': 'general',
        'message': f"Completed {metadata['completed_runs']} simulations with {success_rate:.1f}% success rate",
        'priority': 'info',
    }]
    for insight in insights:
        if insight['type'] == 'high_variance':
            recommendations.append({
                'type': 'pacing',
                'message': f"Tighten {insight['phase']} pacing: its transition day varies widely between players",
                'priority': 'medium',
            })
        elif insight['type'] == 'common_bottleneck':
            recommendations.append({
                'type': 'balance',
                'message': f"Address the {insight['bottleneck']} bottleneck first; most runs hit it",
                'priority': 'high' if insight['severity'] == 'error' else 'medium',
            })
    return recommendations


def analyze_results(outcomes: Sequence[RunOutcome], config: MonteCarloConfig,
                    duration: float = 0.0) -> dict:
    """Aggregate run outcomes (only completed runs feed the statistics)

    Args:
        outcomes: RunOutcome for every submitted run
        config: the MonteCarloConfig used
        duration: wall-clock seconds for the whole batch

    Returns:
        Dictionary with metadata / frame / distributions / confidence_intervals /
        bottlenecks / summary
    """
    counts = {status: 0 for status in RunStatus}
    for outcome in outcomes:
        counts[outcome.status] += 1
    results = [o.result for o in outcomes if o.status is RunStatus.COMPLETED and o.result is not None]

    total = len(outcomes)
    metadata = {
        'total_runs': total,
        'completed_runs': counts[RunStatus.COMPLETED],
        'failed_runs': counts[RunStatus.FAILED],
        'timed_out_runs': counts[RunStatus.TIMED_OUT],
        'stopped_runs': counts[RunStatus.STOPPED],
        'cancelled_runs': config.runs - total,
        'duration': duration,
        'configuration': config.as_dict(),
    }

    frame = build_metrics_frame(results)
    distributions = {}
    intervals = {}
    for column in frame.columns:
        if column == 'seed':
            continue
        values = frame[column].dropna().to_numpy(dtype=float)
        distributions[column] = calc_stats(values)
        intervals[column] = confidence_interval(values, config.confidence_level)

    bottleneck_summary = summarize_bottlenecks(results)
    success_rate = metadata['completed_runs'] / total * 100 if total else 0.0
    insights = generate_insights(distributions, bottleneck_summary, success_rate)

    return {
        'metadata': metadata,
        'frame': frame,
        'distributions': distributions,
        'confidence_intervals': intervals,
        'bottlenecks': bottleneck_summary,
        'summary': {
            'success_rate': success_rate,
            'average_run_time': float(np.mean([o.wall_time for o in outcomes])) if outcomes else 0.0,
            'key_insights': insights,
            'recommendations': generate_recommendations(metadata, success_rate, insights),
        },
        'outcomes': list(outcomes),
    }


# ==================== Orchestration ====================

class MonteCarloManager:
    """Runs a batch of variant simulations on a worker pool"""

    def __init__(self, config: Optional[MonteCarloConfig] = None,
                 game_values: Optional[GameConfiguration] = None,
                 profile: Optional[PlayerProfile] = None,
                 on_progress: Optional[Callable[[SimulationProgress], None]] = None):
        self.config = config if config else MonteCarloConfig()
        self.game_values = game_values if game_values else default_game_values()
        self.profile = profile if profile else PlayerProfile.default()
        self.on_progress = on_progress
        self.progress = SimulationProgress(total=self.config.runs)
        self.outcomes: List[RunOutcome] = []
        self._stop_event = threading.Event()
        self._futures: Dict[Future, int] = {}

    def jobs(self) -> List[Tuple]:
        """(seed, settings, game_values, profile) per run"""
        cfg = self.config
        base_balance = cfg.settings.balance
        jobs = []
        for run_index in range(cfg.runs):
            settings = replace(
                cfg.settings,
                max_days=cfg.max_days,
                balance=generate_variant_balance(base_balance, run_index, cfg.variance, cfg.base_seed),
            )
            jobs.append((
                cfg.base_seed + run_index,
                settings,
                generate_variant_game_values(self.game_values, run_index, cfg.variance, cfg.base_seed),
                generate_variant_profile(self.profile, run_index, cfg.variance, cfg.base_seed),
            ))
        return jobs

    def stop(self):
        """Cancel queued runs; in-flight runs halt at their next tick"""
        self.progress.cancelled = True
        self._stop_event.set()
        for future in list(self._futures):
            future.cancel()

    def get_progress(self) -> dict:
        return self.progress.as_dict()

    def _never_started(self, outcome: RunOutcome) -> bool:
        # A worker that picked the job up after stop() halts before its first tick
        if not self._stop_event.is_set() or outcome.status is not RunStatus.STOPPED:
            return False
        return outcome.result is None or outcome.result.snapshot.tick == 0

    def _record(self, outcome: RunOutcome):
        if self._never_started(outcome):
            logger.debug("Run seed=%s cancelled before its first tick", outcome.seed)
            return
        self.outcomes.append(outcome)
        p = self.progress
        if outcome.status is RunStatus.COMPLETED:
            p.completed += 1
        elif outcome.status is RunStatus.FAILED:
            p.failed += 1
            logger.warning("Run seed=%s failed: %s", outcome.seed, outcome.error)
        elif outcome.status is RunStatus.TIMED_OUT:
            p.timed_out += 1
            logger.warning("Run seed=%s timed out after %.1fs", outcome.seed, outcome.wall_time)
        else:
            p.stopped += 1
        if self.on_progress is not None:
            self.on_progress(p)

    def run(self) -> dict:
        """Run every variant and return the aggregated analysis"""
        cfg = self.config
        self.outcomes = []
        self._futures = {}
        self.progress = SimulationProgress(total=cfg.runs, start_time=time.time())
        started = time.perf_counter()
        jobs = self.jobs()

        manager = None
        if cfg.executor == 'process':
            manager = multiprocessing.Manager()
            self._stop_event = manager.Event()
        else:
            self._stop_event = threading.Event()

        logger.info("Starting %d Monte Carlo runs (%s, %d workers)", cfg.runs, cfg.executor, cfg.max_workers)
        try:
            if cfg.executor == 'serial':
                self._run_serial(jobs)
            else:
                self._run_pool(jobs)
        finally:
            if manager is not None:
                manager.shutdown()

        duration = time.perf_counter() - started
        logger.info("Monte Carlo finished: %d/%d completed in %.1fs",
                    self.progress.completed, cfg.runs, duration)
        return analyze_results(self.outcomes, cfg, duration)

    def _run_serial(self, jobs):
        for seed, settings, values, profile in jobs:
            if self._stop_event.is_set():
                self.progress.cancelled = True
                break
            self._record(run_one_simulation(seed, settings, values, profile,
                                            stop_event=self._stop_event,
                                            timeout=self.config.timeout_per_run))

    def _run_pool(self, jobs):
        cfg = self.config
        pool_class = ProcessPoolExecutor if cfg.executor == 'process' else ThreadPoolExecutor
        with pool_class(max_workers=cfg.max_workers) as pool:
            futures = {
                pool.submit(run_one_simulation, seed, settings, values, profile,
                            self._stop_event, cfg.timeout_per_run): seed
                for seed, settings, values, profile in jobs
            }
            self._futures = futures
            if self._stop_event.is_set():
                self.stop()
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                seed = futures[future]
                try:
                    outcome = future.result()
                except Exception as exc:
                    logger.exception("Worker for seed=%s crashed", seed)
                    outcome = RunOutcome(seed=seed, status=RunStatus.FAILED, result=None,
                                         error=f"{type(exc).__name__}: {exc}")
                self._record(outcome)


# ==================== Public API ====================

def run_monte_carlo(n: int = 100, config: Optional[MonteCarloConfig] = None,
                    game_values: Optional[GameConfiguration] = None,
                    profile: Optional[PlayerProfile] = None,
                    on_progress: Optional[Callable[[SimulationProgress], None]] = None) -> dict:
    """Run N Monte Carlo simulations

    Args:
        n: Number of simulations (overrides config.runs)
        config: MonteCarloConfig; defaults otherwise
        game_values: base catalogs to perturb
        profile: base player profile to perturb
        on_progress: called with SimulationProgress after every finished run

    Returns:
        Analysis dictionary (see analyze_results)
    """
    config = replace(config, runs=n) if config else MonteCarloConfig(runs=n)
    manager = MonteCarloManager(config, game_values=game_values, profile=profile, on_progress=on_progress)
    return manager.run()


SENSITIVITY_METRICS = ('total.upgrades', 'total.helpers', 'waste_ratio', 'final.gold', 'final.phase_index')


def default_sensitivity_scenarios() -> List[Tuple[str, Optional[SimulationSettings], Optional[PlayerProfile]]]:
    run_settings = _default_run_settings()
    return [
        ("Baseline", run_settings, PlayerProfile.default()),
        ("No Helpers", replace(run_settings, helpers_enabled=False), PlayerProfile.default()),
        ("Speedrunner", run_settings, PlayerProfile.speedrunner()),
        ("Casual", run_settings, PlayerProfile.casual()),
        ("Ignore Prerequisites", replace(run_settings, enforce_prerequisites=False), PlayerProfile.default()),
    ]


def run_sensitivity_comparison(scenarios=None, runs: int = 20,
                               config: Optional[MonteCarloConfig] = None) -> List[dict]:
    """Run the same batch under each scenario and compare medians to the first

    Args:
        scenarios: list of (name, settings, profile); default_sensitivity_scenarios() if omitted
        runs: runs per scenario
        config: base MonteCarloConfig (seed, days, executor)

    Returns:
        List of {'name', 'analysis', 'medians', 'deltas'}; deltas are vs. the first scenario
    """
    scenarios = scenarios if scenarios is not None else default_sensitivity_scenarios()
    base_config = config if config else MonteCarloConfig(runs=runs)

    comparison = []
    for name, settings, profile in scenarios:
        logger.info("Sensitivity scenario: %s", name)
        scenario_config = replace(base_config, runs=runs,
                                  settings=settings if settings else base_config.settings)
        analysis = MonteCarloManager(scenario_config, profile=profile).run()
        medians = {}
        for metric in SENSITIVITY_METRICS:
            dist = analysis['distributions'].get(metric)
            medians[metric] = dist['median'] if dist else None
        comparison.append({'name': name, 'analysis': analysis, 'medians': medians})

    if comparison:
        baseline = comparison[0]['medians']
        for entry in comparison:
            entry['deltas'] = {
                metric: (value - baseline[metric]
                         if value is not None and baseline[metric] is not None else None)
                for metric, value in entry['medians'].items()
            }
    return comparison
