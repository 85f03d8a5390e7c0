"""Helper discovery (pity system) and helper automation."""

from dataclasses import replace

import pytest

from balance_config import BALANCE
from engine import Engine, EventCategory, Severity, discovery_chance, helper_type_for, step_tick
from player_profile import PlayerProfile


def test_pity_chance_is_capped():
    # plot bonus 0.10 + pity 0.35 would be 0.45
    assert discovery_chance(0, 20, 10) == 0.15


def test_no_chance_below_thresholds():
    assert discovery_chance(0, 15, 3) == 0.0
    assert discovery_chance(0, 16, 3) == pytest.approx(0.02)
    assert discovery_chance(0, 0, 4) == pytest.approx(0.05)


def test_later_tiers_are_stingier():
    assert discovery_chance(1, 45, 12) == pytest.approx(0.08)
    assert discovery_chance(2, 75, 20) == pytest.approx(0.025)
    assert discovery_chance(9, 200, 100) == pytest.approx(BALANCE.discovery_tiers[-1].cap)


def test_helper_discovery_order():
    assert [helper_type_for(i) for i in range(6)] == ['gnome', 'golem', 'sprite', 'dragon', 'phoenix', 'sprite']


def test_discovered_helpers_get_better(engine):
    helpers = [engine.discover_helper() for _ in range(4)]
    assert [h.type for h in helpers] == ['gnome', 'golem', 'sprite', 'dragon']
    assert [h.efficiency for h in helpers] == pytest.approx([0.8, 0.9, 1.0, 1.0])
    assert helpers[0].abilities == frozenset({'auto_harvest'})
    assert engine.gs.metrics.helper_discovery_days == {'gnome': 1, 'golem': 1, 'sprite': 1, 'dragon': 1}
    assert any(e.category is EventCategory.DISCOVERY and e.severity is Severity.MAJOR
               for e in engine.gs.event_log)


def test_missing_archetype_is_a_warning(quiet_settings, game_values):
    eng = Engine(quiet_settings, seed=1, game_values=game_values.with_catalogs(helpers={}),
                 profile=PlayerProfile.idle())
    assert eng.discover_helper() is None
    assert eng.gs.helpers == []
    assert eng.gs.event_log[-1].severity is Severity.WARNING


def test_no_discovery_without_crops(engine, fixed_rng):
    engine.gs.clock.day = 30
    engine.rng = fixed_rng(0.0)
    assert engine.check_helper_discovery() is None
    engine.plant(1, 'carrot')
    assert engine.check_helper_discovery().type == 'gnome'


def _helper_engine(quiet_settings, game_values, fixed_rng, helpers):
    eng = Engine(replace(quiet_settings, helpers_enabled=True), seed=1, game_values=game_values,
                 profile=PlayerProfile.idle())
    for _ in range(helpers):
        eng.discover_helper()
    eng.rng = fixed_rng(0.0)
    return eng


def test_gnome_harvests_ready_crops(quiet_settings, game_values, fixed_rng):
    eng = _helper_engine(quiet_settings, game_values, fixed_rng, helpers=1)
    eng.plant(1, 'carrot')
    step_tick(eng, 60)
    assert eng.plot(1).is_empty
    assert eng.gs.metrics.crops_harvested == 1
    assert eng.gs.resources.energy.current == pytest.approx(10 + 10 / 60)


def test_gnome_ignores_carry_capacity(quiet_settings, game_values, fixed_rng):
    eng = _helper_engine(quiet_settings, game_values, fixed_rng, helpers=1)
    for plot_id in (1, 2, 3):
        eng.plant(plot_id, 'radish')
    step_tick(eng, 30)
    assert eng.gs.metrics.crops_harvested == 3


def test_golem_plants_and_waters(quiet_settings, game_values, fixed_rng):
    eng = _helper_engine(quiet_settings, game_values, fixed_rng, helpers=2)
    step_tick(eng, 1)
    assert [p.crop for p in eng.gs.plots] == ['potato', 'potato', 'potato']
    assert all(p.watered for p in eng.gs.plots)
    assert eng.gs.water_tank.current == 17


def test_sprite_sends_hero_adventuring(quiet_settings, game_values, fixed_rng):
    eng = _helper_engine(quiet_settings, game_values, fixed_rng, helpers=3)
    eng.gs.resources.energy.cap = 1000
    eng.gs.resources.energy.current = 500
    eng.process_helpers()
    action = eng.gs.hero_action
    assert action is not None
    assert (action.kind, action.target, action.duration_tier) == ('adventure', 'meadow_path', 'medium')


def test_sprite_waits_for_energy(quiet_settings, game_values, fixed_rng):
    eng = _helper_engine(quiet_settings, game_values, fixed_rng, helpers=3)
    eng.gs.resources.energy.current = 50
    eng.process_helpers()
    assert eng.gs.hero_action is None
