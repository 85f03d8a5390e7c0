"""Shared fixtures: deterministic engines with the player and helpers switched off."""

import pytest

from engine import Engine, SimulationSettings
from game_values import default_game_values
from player_profile import PlayerProfile


@pytest.fixture
def game_values():
    return default_game_values()


@pytest.fixture
def quiet_settings():
    # No player sessions, no helper automation or discovery
    return SimulationSettings(session_clock='simulated', autoplay=False, helpers_enabled=False,
                              log_level='detailed')


@pytest.fixture
def engine(quiet_settings, game_values):
    return Engine(settings=quiet_settings, seed=1, game_values=game_values, profile=PlayerProfile.idle())


@pytest.fixture
def autoplay_settings():
    return SimulationSettings(max_days=2, session_clock='simulated', log_level='standard')


class FixedRandom:
    """Stand-in for random.Random whose draws always return `value`"""

    def __init__(self, value):
        self.value = value

    def random(self):
        return self.value

    def choice(self, seq):
        return seq[0]


@pytest.fixture
def fixed_rng():
    return FixedRandom
