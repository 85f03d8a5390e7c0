"""Player archetype scenarios."""

import pytest

from game_values import ReadOnlyMap
from monte_carlo import MonteCarloConfig, calc_stats
from player_profile import PlayerProfile, UpgradeStrategy
from scenarios import SCENARIOS, Scenario, ScenarioExpectations, get_scenario, run_scenario, validate_scenario


def _analysis(completed=10, **columns):
    return {
        'metadata': {'completed_runs': completed},
        'distributions': {name: calc_stats(values) for name, values in columns.items()},
    }


def test_presets():
    assert set(SCENARIOS) == {'speedrunner', 'casual', 'weekend_warrior'}
    speedrunner = get_scenario('speedrunner')
    assert speedrunner.expectations.max_days == 14
    assert speedrunner.profile.upgrade_strategy is UpgradeStrategy.PRODUCTION_FOCUSED
    assert get_scenario('weekend_warrior').profile.name == 'weekend_warrior'


def test_unknown_scenario():
    with pytest.raises(ValueError, match='unknown scenario'):
        get_scenario('bot')


def test_validate_passes_when_expectations_met():
    analysis = _analysis(**{
        'total.helpers': [1, 2, 2],
        'total.upgrades': [6, 7, 9],
        'phase_transition_day.early': [1, 1, 1],
        'phase_transition_day.mid': [2, 3, 3],
        'phase_transition_day.late': [6, 7, 8],
    })
    analysis['metadata']['completed_runs'] = 3
    assert validate_scenario(get_scenario('speedrunner'), analysis) == []


def test_validate_reports_each_miss():
    analysis = _analysis(completed=4, **{
        'total.helpers': [0, 0, 1, 0],
        'total.upgrades': [6, 6, 6, 6],
        'phase_transition_day.early': [1, 1, 1, 1],
        'phase_transition_day.mid': [5, 6, 5, 5],
        'phase_transition_day.late': [9],
    })
    failures = validate_scenario(get_scenario('speedrunner'), analysis)
    assert len(failures) == 3
    assert 'median helpers' in failures[0]
    assert 'mid reached on day 5' in failures[1]
    assert 'late reached in only 1/4 runs' in failures[2]


def test_validate_without_completed_runs():
    failures = validate_scenario(get_scenario('casual'), _analysis(completed=0))
    assert failures == ["casual: no completed runs to validate"]


def test_run_scenario_uses_expected_run_length():
    scenario = Scenario(
        name='one_day',
        description="A single day of the default player",
        profile=PlayerProfile.default(),
        expectations=ScenarioExpectations(max_days=1, phase_by_day=ReadOnlyMap({'early': 1})),
    )
    analysis = run_scenario(scenario, runs=2, config=MonteCarloConfig.quick())

    assert analysis['metadata']['completed_runs'] == 2
    assert analysis['metadata']['configuration']['max_days'] == 1
    assert validate_scenario(scenario, analysis) == []
