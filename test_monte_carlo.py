"""Monte Carlo variants, statistics and orchestration."""

import math
from dataclasses import replace

import numpy as np
import pandas as pd
import pytest

from balance_config import BALANCE, DEFAULT_VARIANCE, VarianceConfig
from engine import RunOutcome, RunStatus
from monte_carlo import (BALANCE_STREAM, CATALOG_STREAM, PROFILE_STREAM, MonteCarloConfig, MonteCarloManager,
                         SimulationProgress, _variant_rng, analyze_results,
                         calc_stats, confidence_interval, default_sensitivity_scenarios,
                         generate_insights, generate_variant_balance, generate_variant_game_values,
                         generate_variant_profile, run_metrics, run_monte_carlo,
                         run_sensitivity_comparison, z_score)
from player_profile import PlayerProfile


@pytest.fixture
def tiny_config():
    return MonteCarloConfig.quick(runs=3, max_days=1)


# ==================== Variants ====================

def test_variants_are_reproducible(game_values):
    first = generate_variant_game_values(game_values, 3)
    assert first == generate_variant_game_values(game_values, 3)
    assert first != generate_variant_game_values(game_values, 4)
    assert first != generate_variant_game_values(game_values, 3, base_seed=7)


def test_variant_leaves_base_untouched(game_values):
    generate_variant_game_values(game_values, 0, VarianceConfig(crop_growth=0.5))
    assert game_values.crop('carrot').growth_time == 60
    assert game_values.adventure('meadow_path').gold_reward == 50


def test_crop_growth_stays_in_band(game_values):
    variant = generate_variant_game_values(game_values, 11)
    for crop_id, crop in game_values.crops.items():
        varied = variant.crop(crop_id).growth_time
        assert crop.growth_time * 0.9 - 1 <= varied <= crop.growth_time * 1.1 + 1
        assert varied >= 1


def test_zero_variance_is_identity(game_values):
    none = VarianceConfig.none()
    assert generate_variant_game_values(game_values, 5, none) == game_values
    base_profile = PlayerProfile.default()
    assert generate_variant_profile(base_profile, 5, none) == base_profile
    assert generate_variant_balance(BALANCE, 5, none) == BALANCE


def test_profile_variant_shifts_check_ins():
    base = PlayerProfile.default()
    variant = generate_variant_profile(base, 2)
    assert variant == generate_variant_profile(base, 2)
    for before, after in zip(base.weekday_schedule + base.weekend_schedule,
                             variant.weekday_schedule + variant.weekend_schedule):
        assert abs(after.minute_of_day - before.minute_of_day) <= 12
        assert after.duration >= 1
        assert after.probability == before.probability
    assert all(0.1 <= value <= 1.0 for value in variant.efficiency.values())
    assert variant.upgrade_strategy is base.upgrade_strategy


def test_balance_variant_keeps_caps():
    variant = generate_variant_balance(BALANCE, 9)
    for before, after in zip(BALANCE.discovery_tiers, variant.discovery_tiers):
        assert after.cap == before.cap
        assert before.per_plot_bonus * 0.7 <= after.per_plot_bonus <= before.per_plot_bonus * 1.3
        assert before.per_day_bonus * 0.7 <= after.per_day_bonus <= before.per_day_bonus * 1.3
    assert variant.rare_drop_chance == BALANCE.rare_drop_chance


def test_variant_streams_do_not_overlap():
    assert _variant_rng(42, 1000, CATALOG_STREAM).random() != _variant_rng(42, 0, PROFILE_STREAM).random()
    assert _variant_rng(42, 0, CATALOG_STREAM).random() != _variant_rng(42, 0, BALANCE_STREAM).random()
    assert _variant_rng(42, 3, PROFILE_STREAM).random() == _variant_rng(42, 3, PROFILE_STREAM).random()


def test_jobs_are_reproducible():
    config = MonteCarloConfig(runs=10, max_days=5, executor='serial')
    jobs = MonteCarloManager(config).jobs()
    assert jobs == MonteCarloManager(config).jobs()
    assert [job[0] for job in jobs] == list(range(42, 52))
    assert all(settings.max_days == 5 for _, settings, _, _ in jobs)
    assert jobs[0][1].balance != jobs[1][1].balance


# ==================== Statistics ====================

def test_calc_stats():
    dist = calc_stats([1, 2, 3, 4, 5])
    assert dist['count'] == 5
    assert dist['mean'] == 3.0
    assert dist['median'] == 3.0
    assert dist['std'] == pytest.approx(math.sqrt(2))
    assert dist['skew'] == pytest.approx(0.0)
    assert dist['p5'] == pytest.approx(1.2)
    assert (dist['min'], dist['max']) == (1.0, 5.0)


def test_calc_stats_edge_cases():
    assert calc_stats([]) is None
    assert calc_stats(None) is None
    flat = calc_stats([2, 2, 2, 2])
    assert flat['std'] == 0.0
    assert flat['skew'] == 0.0 and flat['kurtosis'] == 0.0
    assert calc_stats([7])['p95'] == 7.0


@pytest.mark.parametrize("level,z", [(0.95, 1.96), (0.90, 1.64), (0.99, 2.58)])
def test_z_score(level, z):
    assert z_score(level) == z


def test_confidence_interval():
    ci = confidence_interval([1, 2, 3, 4, 5])
    margin = 1.96 * math.sqrt(2) / math.sqrt(5)
    assert ci['margin'] == pytest.approx(margin)
    assert ci['lower'] == pytest.approx(3 - margin)
    assert ci['upper'] == pytest.approx(3 + margin)
    assert ci['n'] == 5
    assert confidence_interval([]) is None


def test_run_metrics_row(engine):
    row = run_metrics(engine.result())
    assert row['seed'] == 1
    assert row['final.day'] == 1
    assert row['phase_transition_day.tutorial'] == 1
    assert np.isnan(row['phase_transition_day.mid'])
    assert np.isnan(row['helper_discovery_day.gnome'])
    assert row['total.plots'] == 3
    assert row['waste_ratio'] == 0.0


def test_progress_tracking():
    progress = SimulationProgress(total=4, completed=1, failed=1)
    assert progress.finished == 2
    assert progress.progress_pct() == 0.5
    assert SimulationProgress().progress_pct() == 0.0
    assert SimulationProgress().eta() == 0
    assert progress.as_dict()['percentage'] == 50.0


# ==================== Analysis ====================

def test_analysis_counts_every_outcome(engine):
    completed = RunOutcome(seed=1, status=RunStatus.COMPLETED, result=engine.result(), wall_time=2.0)
    timed_out = RunOutcome(seed=2, status=RunStatus.TIMED_OUT, result=None, error="exceeded 5s budget",
                           wall_time=5.0)
    config = MonteCarloConfig(runs=3, executor='serial')
    analysis = analyze_results([completed, timed_out], config, duration=7.5)

    meta = analysis['metadata']
    assert meta['total_runs'] == 2
    assert meta['completed_runs'] == 1
    assert meta['timed_out_runs'] == 1
    assert meta['failed_runs'] == 0
    assert meta['cancelled_runs'] == 1
    assert meta['configuration']['runs'] == 3

    assert len(analysis['frame']) == 1
    assert analysis['distributions']['phase_transition_day.mid'] is None
    assert analysis['distributions']['final.day']['mean'] == 1.0

    summary = analysis['summary']
    assert summary['success_rate'] == 50.0
    assert summary['average_run_time'] == 3.5
    types = [i['type'] for i in summary['key_insights']]
    assert 'low_success_rate' in types
    assert 'common_bottleneck' in types
    assert summary['recommendations'][0]['type'] == 'general'


def test_high_variance_insight():
    distributions = {
        'phase_transition_day.mid': calc_stats([1, 1, 10]),
        'phase_transition_day.late': calc_stats([8, 8, 9]),
        'final.gold': calc_stats([1, 1000]),
    }
    insights = generate_insights(distributions, {}, success_rate=100.0)
    assert [(i['type'], i['phase']) for i in insights] == [('high_variance', 'mid')]


# ==================== Orchestration ====================

def test_serial_batch(tiny_config):
    seen = []
    analysis = run_monte_carlo(3, tiny_config, on_progress=lambda p: seen.append(p.finished))

    assert seen == [1, 2, 3]
    assert analysis['metadata']['completed_runs'] == 3
    assert analysis['summary']['success_rate'] == 100.0
    assert sorted(analysis['frame']['seed']) == [42, 43, 44]
    assert analysis['distributions']['final.day']['mean'] == 2.0
    assert all(o.result is not None for o in analysis['outcomes'])


def test_batches_are_reproducible(tiny_config):
    first = run_monte_carlo(2, tiny_config)['frame']
    second = run_monte_carlo(2, tiny_config)['frame']
    pd.testing.assert_frame_equal(first, second)


def test_thread_pool_matches_serial(tiny_config):
    serial = run_monte_carlo(3, tiny_config)['frame']
    threaded = run_monte_carlo(3, replace(tiny_config, executor='thread', max_workers=2))['frame']
    pd.testing.assert_frame_equal(serial.sort_values('seed').reset_index(drop=True),
                                  threaded.sort_values('seed').reset_index(drop=True))


def test_stop_cancels_remaining_runs():
    manager = MonteCarloManager(MonteCarloConfig.quick(runs=5, max_days=1))
    manager.on_progress = lambda progress: manager.stop()
    analysis = manager.run()

    assert analysis['metadata']['completed_runs'] == 1
    assert analysis['metadata']['cancelled_runs'] == 4
    assert manager.get_progress()['cancelled']


@pytest.mark.parametrize("executor,runs", [('thread', 12), ('process', 6)])
def test_stop_cancels_queued_pool_runs(executor, runs):
    config = replace(MonteCarloConfig.quick(runs=runs, max_days=3), executor=executor, max_workers=1)
    manager = MonteCarloManager(config)
    manager.on_progress = lambda progress: manager.stop()
    meta = manager.run()['metadata']

    # Only the run already in flight when stop() fires may end as stopped
    assert meta['completed_runs'] == 1
    assert meta['stopped_runs'] <= 1
    assert meta['cancelled_runs'] >= runs - 2
    assert meta['completed_runs'] + meta['stopped_runs'] + meta['cancelled_runs'] == runs
    assert manager.get_progress()['cancelled']


def test_config_validation():
    with pytest.raises(ValueError):
        MonteCarloConfig(runs=0)
    with pytest.raises(ValueError):
        MonteCarloConfig(executor='gpu')
    with pytest.raises(ValueError):
        MonteCarloConfig(confidence_level=1.0)

    config = MonteCarloConfig.quick()
    assert config.executor == 'serial'
    assert config.settings.session_clock == 'simulated'
    assert config.as_dict()['variance'] == vars(DEFAULT_VARIANCE)


def test_sensitivity_comparison(tiny_config):
    scenarios = [("Base", None, PlayerProfile.default()), ("Idle", None, PlayerProfile.idle())]
    comparison = run_sensitivity_comparison(scenarios, runs=2, config=tiny_config)

    assert [c['name'] for c in comparison] == ["Base", "Idle"]
    assert all(delta in (0.0, None) for delta in comparison[0]['deltas'].values())
    assert set(comparison[1]['medians']) == set(comparison[1]['deltas'])
    assert comparison[1]['analysis']['metadata']['total_runs'] == 2


def test_default_sensitivity_scenarios():
    names = [name for name, _, _ in default_sensitivity_scenarios()]
    assert names[0] == "Baseline"
    assert "No Helpers" in names
