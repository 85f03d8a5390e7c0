"""
Player archetype scenarios
==========================
Named player profiles with the outcomes a balanced game should give them,
plus validation of Monte Carlo results against those expectations.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from game_values import GameConfiguration, ReadOnlyMap
from monte_carlo import MonteCarloConfig, MonteCarloManager
from player_profile import PlayerProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScenarioExpectations:
    """What the median run of an archetype should achieve"""
    max_days: int = 28
    min_helpers: int = 0
    min_upgrades: int = 0
    # phase -> latest day it should be reached
    phase_by_day: ReadOnlyMap = field(default_factory=ReadOnlyMap)


@dataclass(frozen=True)
class Scenario:
    name: str
    description: str
    profile: PlayerProfile
    expectations: ScenarioExpectations


SCENARIOS: Dict[str, Scenario] = {
    'speedrunner': Scenario(
        name='speedrunner',
        description="Checks in constantly and plays optimally",
        profile=PlayerProfile.speedrunner(),
        expectations=ScenarioExpectations(
            max_days=14,
            min_helpers=1,
            min_upgrades=6,
            phase_by_day=ReadOnlyMap({'early': 1, 'mid': 3, 'late': 8}),
        ),
    ),
    'casual': Scenario(
        name='casual',
        description="Two short check-ins a day, middling decisions",
        profile=PlayerProfile.casual(),
        expectations=ScenarioExpectations(
            max_days=28,
            min_helpers=1,
            min_upgrades=3,
            phase_by_day=ReadOnlyMap({'early': 1, 'mid': 3, 'late': 8, 'endgame': 15}),
        ),
    ),
    'weekend_warrior': Scenario(
        name='weekend_warrior',
        description="Barely plays on weekdays, long weekend sessions",
        profile=PlayerProfile.weekend_warrior(),
        expectations=ScenarioExpectations(
            max_days=28,
            min_helpers=1,
            min_upgrades=3,
            phase_by_day=ReadOnlyMap({'early': 1, 'mid': 3, 'late': 8, 'endgame': 15}),
        ),
    ),
}


def get_scenario(name: str) -> Scenario:
    if name not in SCENARIOS:
        raise ValueError(f"unknown scenario {name!r}; expected one of {sorted(SCENARIOS)}")
    return SCENARIOS[name]


def run_scenario(scenario: Scenario, runs: int = 20, config: Optional[MonteCarloConfig] = None,
                 game_values: Optional[GameConfiguration] = None) -> dict:
    """Monte Carlo batch for one archetype (run length from its expectations)"""
    base = config if config else MonteCarloConfig()
    config = replace(base, runs=runs, max_days=scenario.expectations.max_days)
    logger.info("Running scenario %s (%d runs, %d days)", scenario.name, runs, config.max_days)
    return MonteCarloManager(config, game_values=game_values, profile=scenario.profile).run()


def _median(distributions: dict, column: str) -> Optional[float]:
    dist = distributions.get(column)
    return dist['median'] if dist else None


def validate_scenario(scenario: Scenario, analysis: dict) -> List[str]:
    """Expectations the median outcome misses (empty list = pass)

    Args:
        scenario: Scenario with expectations
        analysis: result of MonteCarloManager.run() / run_scenario()

    Returns:
        Human-readable failure messages
    """
    completed = analysis['metadata']['completed_runs']
    if completed == 0:
        return [f"{scenario.name}: no completed runs to validate"]

    expectations = scenario.expectations
    distributions = analysis['distributions']
    failures = []

    helpers = _median(distributions, 'total.helpers')
    if helpers is None or helpers < expectations.min_helpers:
        failures.append(f"{scenario.name}: median helpers {helpers} < expected {expectations.min_helpers}")

    upgrades = _median(distributions, 'total.upgrades')
    if upgrades is None or upgrades < expectations.min_upgrades:
        failures.append(f"{scenario.name}: median upgrades {upgrades} < expected {expectations.min_upgrades}")

    for phase, latest_day in expectations.phase_by_day.items():
        dist = distributions.get(f'phase_transition_day.{phase}')
        reached = dist['count'] if dist else 0
        if reached * 2 < completed:
            failures.append(f"{scenario.name}: {phase} reached in only {reached}/{completed} runs")
        elif dist['median'] > latest_day:
            failures.append(f"{scenario.name}: {phase} reached on day {dist['median']:.0f} "
                            f"(expected by day {latest_day})")

    return failures
