"""
Balance Analytics
=================
Bottleneck detection and balance reports for finished runs.
Everything here reads a RunResult and never touches a live engine.
"""

from dataclasses import asdict, dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from balance_config import (ANALYZER_THRESHOLDS, PHASE_TARGETS, PHASES, SCREEN_TIME_TARGETS,
                            AnalyzerThresholds)

MINUTES_PER_DAY = 24 * 60

# (hint when too fast, hint when too slow)
PHASE_GUIDANCE = {
    'tutorial': ("Add guided first steps so the tutorial lasts at least an hour",
                 "Shorten the tutorial: unlock the second crop and first plot sooner"),
    'early': ("Raise early upgrade costs or slow early crops",
              "Cheaper early storage or faster early crops would speed up the early game"),
    'mid': ("Gate mid-game upgrades behind more materials",
            "Reduce mid-game material costs or improve adventure rewards"),
    'late': ("Increase late-game upgrade costs or helper discovery thresholds",
             "Late game drags: add plot expansions or stronger helpers"),
    'endgame': ("Endgame content runs out early; add prestige goals",
                "Endgame takes too long: lower endgame costs"),
}


@dataclass(frozen=True)
class Bottleneck:
    type: str
    severity: str  # low / medium / high
    description: str
    suggestion: str
    metric: float


def expected_phase(day: int, thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS) -> str:
    """Phase a healthy run should be in on `day`"""
    for phase, last_day in zip(PHASES, thresholds.expected_phase_days):
        if day <= last_day:
            return phase
    return PHASES[-1]


# ==================== Bottlenecks ====================

def detect_bottlenecks(result, thresholds: AnalyzerThresholds = ANALYZER_THRESHOLDS) -> Tuple[Bottleneck, ...]:
    """Rule-based bottleneck detection over a finished run

    Args:
        result: anything with a GameSnapshot `.snapshot` and Metrics `.metrics`
        thresholds: AnalyzerThresholds to use

    Returns:
        Tuple of Bottleneck, in rule order (same input -> same output)
    """
    snap = result.snapshot
    m = result.metrics
    t = thresholds
    found = []

    waste_ratio = m.energy_wasted / (m.energy_generated + 1)
    if waste_ratio > t.waste_ratio:
        found.append(Bottleneck(
            type='energy_storage',
            severity='high',
            description=f"{waste_ratio * 100:.1f}% of generated energy was lost to the storage cap",
            suggestion="Make storage upgrades cheaper or available earlier",
            metric=waste_ratio,
        ))

    energy_pct = snap.energy / snap.energy_cap * 100 if snap.energy_cap else 0.0
    total_plots = snap.total_plots
    active = snap.active_plots
    if energy_pct < t.low_energy_pct and active < t.spare_plot_ratio * total_plots:
        found.append(Bottleneck(
            type='energy_generation',
            severity='medium',
            description=f"Energy at {energy_pct:.1f}% of cap with only {active}/{total_plots} plots planted",
            suggestion="Speed up early crops or raise their energy yield",
            metric=energy_pct,
        ))

    if total_plots and active >= t.plot_capacity_ratio * total_plots and snap.gold > t.spare_gold:
        found.append(Bottleneck(
            type='plot_expansion',
            severity='medium',
            description=f"{active}/{total_plots} plots in use while holding {snap.gold:.0f} gold",
            suggestion="Offer farm expansions sooner or make them cheaper",
            metric=active / total_plots,
        ))

    low = sorted(name for name, amount in snap.materials.items() if amount < t.low_material_amount)
    if len(low) > t.low_material_types and snap.day > t.material_check_day:
        found.append(Bottleneck(
            type='material_shortage',
            severity='low',
            description=f"{len(low)} material types below {t.low_material_amount:.0f}: {', '.join(low)}",
            suggestion="Increase adventure and mining material drops",
            metric=float(len(low)),
        ))

    if not snap.helpers and active > t.helper_active_plots and snap.day > t.helper_check_day:
        found.append(Bottleneck(
            type='helper_discovery',
            severity='high',
            description=f"No helpers by day {snap.day} despite {active} active plots",
            suggestion="Lower the first discovery thresholds or raise the pity bonus",
            metric=float(active),
        ))

    expected = expected_phase(snap.day, t)
    lag = PHASES.index(expected) - PHASES.index(snap.phase)
    if lag > 0:
        found.append(Bottleneck(
            type='phase_progression',
            severity='medium',
            description=f"Still in {snap.phase} on day {snap.day}; expected {expected}",
            suggestion="Lower the next phase gate or speed up plot growth",
            metric=float(lag),
        ))

    return tuple(found)


def summarize_bottlenecks(results: Sequence) -> Dict[str, dict]:
    """How often each bottleneck type appears across runs"""
    if not results:
        return {}

    summary = {}
    for result in results:
        for b in result.bottlenecks:
            if b.type not in summary:
                summary[b.type] = {'count': 0, 'severity': b.severity, 'metrics': []}
            summary[b.type]['count'] += 1
            summary[b.type]['metrics'].append(b.metric)

    for kind, data in summary.items():
        data['avg_metric'] = float(np.mean(data['metrics'])) if data['metrics'] else 0.0
        data['pct_of_runs'] = data['count'] / len(results) * 100
    return summary


# ==================== Phase & Screen Time ====================

def analyze_phases(result) -> Dict[str, dict]:
    """Compare time spent in each reached phase with its design window"""
    m = result.metrics
    snap = result.snapshot
    analysis = {}

    for phase in PHASES:
        if phase in m.phase_durations:
            ticks = m.phase_durations[phase]
            ongoing = False
        elif phase == snap.phase:
            ticks = snap.tick - m.phase_transition_ticks.get(phase, 0)
            ongoing = True
        else:
            continue

        target = PHASE_TARGETS[phase]
        days = ticks / MINUTES_PER_DAY
        if days < target.min_days:
            status = 'in_progress' if ongoing else 'too_fast'
            deviation = (days - target.min_days) / target.min_days * 100
        elif days > target.max_days:
            status = 'too_slow'
            deviation = (days - target.max_days) / target.max_days * 100
        else:
            status = 'on_target'
            deviation = 0.0

        analysis[phase] = {
            'actual_days': round(days, 2),
            'target_min': target.min_days,
            'target_max': target.max_days,
            'status': status,
            'deviation_pct': round(deviation, 1),
            'ongoing': ongoing,
        }
    return analysis


def analyze_screen_time(result) -> Dict[str, dict]:
    """Share of total time spent at each location vs. its target window"""
    location_time = result.metrics.location_time
    total = sum(location_time.values())
    analysis = {}
    for location, target in SCREEN_TIME_TARGETS.items():
        minutes = location_time.get(location, 0)
        pct = minutes / total * 100 if total else 0.0
        if pct < target.min_pct:
            status = 'underutilized'
        elif pct > target.max_pct:
            status = 'overutilized'
        else:
            status = 'balanced'
        analysis[location] = {
            'minutes': minutes,
            'percentage': round(pct, 1),
            'target_min': target.min_pct,
            'target_max': target.max_pct,
            'status': status,
        }
    return analysis


# ==================== Reports ====================

def generate_recommendations(result, bottlenecks: Optional[Sequence[Bottleneck]] = None) -> List[str]:
    if bottlenecks is None:
        bottlenecks = result.bottlenecks
    recommendations = []

    urgent = next((b for b in bottlenecks if b.severity == 'high'), None)
    if urgent is not None:
        recommendations.append(f"HIGH PRIORITY: {urgent.suggestion} ({urgent.description})")

    for phase, info in analyze_phases(result).items():
        too_fast, too_slow = PHASE_GUIDANCE[phase]
        if info['status'] == 'too_fast':
            recommendations.append(f"{phase.title()} phase: {too_fast} "
                                   f"({info['actual_days']} days vs {info['target_min']:.2f}-{info['target_max']:.0f})")
        elif info['status'] == 'too_slow':
            recommendations.append(f"{phase.title()} phase: {too_slow} "
                                   f"({info['actual_days']} days vs {info['target_min']:.2f}-{info['target_max']:.0f})")

    if not recommendations:
        recommendations.append("No balance changes needed for this run")
    return recommendations


def generate_report(result) -> Dict[str, dict]:
    """Full balance report for one run

    Args:
        result: RunResult

    Returns:
        Dictionary with summary / resources / progression / bottlenecks / recommendations
    """
    snap = result.snapshot
    m = result.metrics
    generated = m.energy_generated

    return {
        'summary': {
            'seed': result.seed,
            'status': result.status.value,
            'final_day': snap.day,
            'max_days': result.max_days,
            'final_phase': snap.phase,
            'helpers': len(snap.helpers),
            'upgrades': len(snap.owned_upgrades),
            'active_plots': snap.active_plots,
            'total_plots': snap.total_plots,
            'profile': result.profile.get('name'),
            'bottleneck_count': len(result.bottlenecks),
        },
        'resources': {
            'energy_generated': generated,
            'energy_spent': m.energy_spent,
            'energy_wasted': m.energy_wasted,
            'energy_efficiency': m.energy_spent / (generated + 1) * 100,
            'waste_pct': m.energy_wasted / (generated + 1) * 100,
            'final_energy': snap.energy,
            'energy_cap': snap.energy_cap,
            'gold': snap.gold,
            'gold_earned': m.gold_earned,
            'materials': dict(snap.materials),
        },
        'progression': {
            'phase_transition_days': dict(m.phase_transition_days),
            'phases': analyze_phases(result),
            'helper_discovery_days': dict(m.helper_discovery_days),
            'upgrade_timings': {uid: day for uid, (day, _tick) in m.upgrade_timings.items()},
            'screen_time': analyze_screen_time(result),
        },
        'bottlenecks': [asdict(b) for b in result.bottlenecks],
        'recommendations': generate_recommendations(result),
    }
