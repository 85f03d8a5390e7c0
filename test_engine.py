"""Tick engine: clock, ledger, farm, phases, run control, public API."""

import logging
import threading
import time
from dataclasses import FrozenInstanceError, replace
from datetime import datetime

import pytest

from analytics import detect_bottlenecks
from engine import (PHASES, Clock, Engine, EventCategory, RunStatus, Severity, SimulationFailed,
                    SimulationSettings, get_results, is_finished, new_game, run_one_simulation, step_tick)
from player_profile import PlayerProfile, SessionSlot


def test_clock_rolls_over_midnight():
    clock = Clock(day=1, hour=23, minute=59)
    clock.advance(1)
    assert (clock.day, clock.hour, clock.minute) == (2, 0, 0)


def test_starting_state(engine):
    gs = engine.gs
    assert (gs.clock.day, gs.clock.hour, gs.clock.minute) == (1, 8, 0)
    assert gs.tick == 0
    assert gs.resources.energy.current == 0
    assert gs.resources.energy.cap == 50
    assert len(gs.plots) == 3
    assert all(p.is_empty for p in gs.plots)
    assert gs.carry_capacity == 2
    assert (gs.water_tank.current, gs.water_tank.max) == (20, 20)
    assert 'watering_can_tool' in gs.tools
    assert gs.farm_stages == {'homestead'}
    assert gs.phase == 'tutorial'
    assert gs.hero_action is None


# ==================== Ledger ====================

def test_cap_clamps_and_counts_waste(engine):
    engine.add_resource('energy', 80)
    engine.enforce_caps()
    assert engine.gs.resources.energy.current == 50
    assert engine.gs.metrics.energy_wasted == 30


def test_cap_warning_is_rate_limited(engine):
    for _ in range(20):
        engine.add_resource('energy', 100)
        engine.enforce_caps()

    warnings = [e for e in engine.gs.event_log
                if e.category is EventCategory.RESOURCE and e.severity is Severity.WARNING]
    assert len(warnings) == 1
    assert engine.gs.metrics.energy_wasted == 50 + 19 * 100


def test_negative_credit_rejected(engine):
    assert not engine.add_resource('gold', -5)
    assert engine.gs.resources.gold == 0
    assert engine.gs.event_log[-1].severity is Severity.WARNING


def test_failed_spend_does_not_mutate(engine):
    engine.add_resource('gold', 10)
    assert not engine.spend_resource('gold', 20)
    assert not engine.spend_all({'gold': 5, 'stone': 1})
    assert engine.gs.resources.gold == 10
    assert engine.spend_all({'gold': 5})
    assert engine.gs.resources.gold == 5


def test_energy_spend_is_tracked(engine):
    engine.add_resource('energy', 40)
    assert engine.spend_resource('energy', 15)
    assert engine.gs.metrics.energy_spent == 15
    assert engine.gs.resources.energy.current == 25


# ==================== Farm ====================

def test_carrot_matures_after_sixty_ticks_then_yields(engine):
    assert engine.plant(1, 'carrot')

    step_tick(engine, 59)
    assert engine.plot(1).growth_stage == 3
    assert engine.gs.resources.energy.current == 0

    step_tick(engine, 1)
    assert engine.plot(1).growth_stage == 4
    assert engine.gs.resources.energy.current == pytest.approx(10 / 60)

    step_tick(engine, 1)
    assert engine.gs.resources.energy.current == pytest.approx(2 * 10 / 60)


def test_harvest_credits_yield_and_clears_plot(engine):
    engine.plant(1, 'carrot')
    step_tick(engine, 60)
    before = engine.gs.resources.energy.current

    assert engine.harvest_crop(1)
    plot = engine.plot(1)
    assert plot.crop is None
    assert plot.growth_stage == 0
    assert plot.planted_at_tick is None
    assert engine.gs.resources.energy.current == pytest.approx(before + 10)
    assert engine.gs.metrics.energy_generated == pytest.approx(before + 10)
    assert engine.gs.metrics.crops_harvested == 1


def test_harvest_rejects_unready_plot(engine):
    engine.plant(1, 'carrot')
    step_tick(engine, 10)
    assert not engine.harvest_crop(1)
    assert engine.plot(1).crop == 'carrot'
    assert engine.gs.event_log[-1].severity is Severity.WARNING


def test_plant_rejections(engine):
    engine.plant(1, 'carrot')
    assert not engine.plant(99, 'carrot')
    assert not engine.plant(1, 'radish')
    assert not engine.plant(2, 'dragonfruit')
    assert engine.gs.metrics.rejected_operations == 3
    assert engine.plot(2).is_empty


def test_water_plot_draws_from_tank(engine):
    engine.plant(1, 'carrot')
    assert engine.water_plot(1)
    assert engine.plot(1).watered
    assert engine.gs.water_tank.current == 19
    assert not engine.water_plot(1)
    assert not engine.water_plot(2)


def test_water_tank_refills_slowly(engine):
    engine.gs.water_tank.current = 10
    step_tick(engine, 20)
    assert engine.gs.water_tank.current == 12


def test_crop_choice_follows_phase(engine, fixed_rng):
    engine.rng = fixed_rng(0.0)
    assert engine.choose_crop(1.0).id == 'potato'
    engine.gs.phase = 'mid'
    engine.gs.clock.day = 3
    assert {c.tier for c in engine.available_crops()} == {'early', 'mid'}


# ==================== Phases ====================

def test_phase_advances_one_step_per_tick(engine):
    step_tick(engine, 1)
    assert engine.gs.phase == 'early'
    m = engine.gs.metrics
    assert m.phase_durations['tutorial'] == 1
    assert m.phase_transition_days == {'tutorial': 1, 'early': 1}
    assert m.phase_transition_ticks['early'] == 1

    engine.gs.clock.day = 20
    step_tick(engine, 1)
    assert engine.gs.phase == 'mid'
    step_tick(engine, 1)
    assert engine.gs.phase == 'late'
    step_tick(engine, 1)
    assert engine.gs.phase == 'endgame'
    step_tick(engine, 1)
    assert engine.gs.phase == 'endgame'


def test_phase_gate_opens_on_active_plots(engine):
    step_tick(engine, 1)
    engine.apply_upgrade_effect('expand_plots_10')
    for plot in engine.gs.plots[:10]:
        engine.plant(plot.id, 'potato')
    step_tick(engine, 1)
    assert engine.gs.phase == 'mid'


# ==================== Invariants over a played run ====================

def test_played_run_keeps_invariants(autoplay_settings):
    eng = Engine(settings=autoplay_settings, seed=7)
    last_phase = 0

    while not eng.is_finished():
        assert eng.tick()
        gs = eng.gs
        energy = gs.resources.energy
        m = gs.metrics

        assert energy.current <= energy.cap + 1e-9
        assert energy.current == pytest.approx(
            m.energy_generated - m.energy_spent - m.energy_wasted, abs=1e-6)

        for plot in gs.plots:
            if plot.crop is None:
                assert plot.growth_stage == 0 and plot.planted_at_tick is None
            assert 0 <= plot.growth_stage <= 4

        phase = PHASES.index(gs.phase)
        assert last_phase <= phase <= last_phase + 1
        last_phase = phase

        if gs.session is not None:
            assert gs.tick - gs.session.started_at_tick <= gs.session.slot.duration

    assert eng.gs.clock.day == 3
    assert eng.gs.metrics.sessions_started > 0


def test_same_seed_same_run():
    settings = SimulationSettings.fast_test(max_days=1)
    a = run_one_simulation(11, settings=settings)
    b = run_one_simulation(11, settings=settings)
    assert a.status is RunStatus.COMPLETED
    assert a.result.snapshot == b.result.snapshot
    assert a.result.metrics == b.result.metrics


# ==================== Player sessions ====================

def test_wall_clock_sessions_use_injected_clock():
    profile = PlayerProfile(name='night_owl', weekday_schedule=(SessionSlot(3, 0, 15, 1.0),),
                            weekend_schedule=())
    settings = SimulationSettings(session_clock='wall_clock', helpers_enabled=False)

    wednesday = Engine(settings, seed=1, profile=profile, wall_clock=lambda: datetime(2024, 1, 3, 3, 30))
    slot = wednesday.check_player_session()
    assert slot is not None and slot.hour == 3

    saturday = Engine(settings, seed=1, profile=profile, wall_clock=lambda: datetime(2024, 1, 6, 3, 30))
    assert saturday.check_player_session() is None


def test_simulated_clock_weekend(quiet_settings):
    profile = PlayerProfile(name='weekday_only', weekday_schedule=(SessionSlot(8, 0, 15, 1.0),),
                            weekend_schedule=())
    eng = Engine(quiet_settings, seed=1, profile=profile)
    assert eng.check_player_session() is not None
    eng.gs.clock.day = 6
    assert eng.check_player_session() is None
    eng.gs.clock.day = 8
    assert eng.check_player_session() is not None


def test_idle_profile_never_checks_in(quiet_settings):
    eng = Engine(replace(quiet_settings, autoplay=True), seed=1, profile=PlayerProfile.idle())
    step_tick(eng, 300)
    assert eng.gs.metrics.sessions_started == 0


def test_session_starts_on_check_interval(quiet_settings):
    profile = PlayerProfile(name='morning', weekday_schedule=(SessionSlot(8, 0, 15, 1.0),),
                            weekend_schedule=())
    eng = Engine(replace(quiet_settings, autoplay=True), seed=1, profile=profile)
    step_tick(eng, 9)
    assert eng.gs.metrics.sessions_started == 0
    step_tick(eng, 1)
    assert eng.gs.metrics.sessions_started == 1


# ==================== Event log ====================

def test_minimal_log_keeps_only_warnings_and_above(game_values):
    settings = SimulationSettings(session_clock='simulated', autoplay=False, helpers_enabled=False,
                                  log_level='minimal')
    eng = Engine(settings, seed=1, game_values=game_values, profile=PlayerProfile.idle())
    eng.plant(1, 'carrot')
    eng.plant(1, 'carrot')
    assert [e.severity for e in eng.gs.event_log] == [Severity.WARNING]


def test_standard_log_drops_hourly_entries(engine, quiet_settings, game_values):
    step_tick(engine, 60)
    assert any(e.category is EventCategory.TIME for e in engine.gs.event_log)

    standard = Engine(replace(quiet_settings, log_level='standard'), seed=1, game_values=game_values,
                      profile=PlayerProfile.idle())
    step_tick(standard, 60)
    assert not any(e.category is EventCategory.TIME for e in standard.gs.event_log)


def test_event_log_is_bounded(quiet_settings):
    eng = Engine(replace(quiet_settings, max_log_entries=5), seed=1, profile=PlayerProfile.idle())
    for _ in range(20):
        eng.plant(99, 'carrot')
    assert len(eng.gs.event_log) == 5


def test_debug_log_mirrors_to_logger(quiet_settings, caplog):
    caplog.set_level(logging.DEBUG, logger='engine')
    eng = Engine(replace(quiet_settings, log_level='debug'), seed=1, profile=PlayerProfile.idle())
    eng.plant(1, 'carrot')
    assert any('Planted Carrot' in r.getMessage() for r in caplog.records)


def test_hourly_snapshots_and_callback(quiet_settings):
    seen = []
    eng = Engine(quiet_settings, seed=1, profile=PlayerProfile.idle(), on_snapshot=seen.append)
    step_tick(eng, 120)
    assert len(eng.gs.resource_history) == 2
    assert [s.hour for s in seen] == [9, 10]


def test_profile_replacement_is_logged(engine):
    engine.update_player_profile(PlayerProfile.casual())
    assert engine.profile.name == 'casual'
    assert engine.gs.event_log[-1].category is EventCategory.CONFIG


def test_income_rates_are_per_hour(engine):
    assert engine.income_rates() == {'gold': 0.0, 'energy': 0.0}
    engine.gs.tick = 120
    engine.gs.metrics.gold_earned = 300.0
    engine.gs.metrics.energy_generated = 30.0
    assert engine.income_rates() == {'gold': 150.0, 'energy': 15.0}


def test_upgrade_recommendations(engine):
    # No income yet: nothing can be saved up for
    assert engine.upgrade_recommendations() == []

    engine.add_resource('gold', 100)
    recs = engine.upgrade_recommendations()
    # The backpack also needs 20 energy, which never accrues without income
    assert [r.upgrade_id for r in recs] == ['storage_shed_1', 'water_barrel', 'farm_expansion_1']
    assert all(r.estimate.can_afford_now for r in recs)
    assert [r.upgrade_id for r in engine.upgrade_recommendations(limit=1)] == ['storage_shed_1']


# ==================== Run control and failures ====================

def test_stop_halts_run():
    eng = Engine(SimulationSettings.fast_test(), seed=3, profile=PlayerProfile.idle())
    eng.stop()
    assert eng.run() is RunStatus.STOPPED
    assert eng.is_finished()
    assert eng.result().status is RunStatus.STOPPED


def test_pause_blocks_until_resume():
    eng = Engine(SimulationSettings.fast_test(max_days=1), seed=3, profile=PlayerProfile.idle())
    eng.pause()
    statuses = []
    worker = threading.Thread(target=lambda: statuses.append(eng.run()))
    worker.start()
    time.sleep(0.1)
    assert eng.gs.tick == 0
    eng.resume()
    worker.join(timeout=60)
    assert statuses == [RunStatus.COMPLETED]
    assert eng.gs.clock.day == 2


def test_deadline_in_the_past_times_out():
    eng = Engine(SimulationSettings.fast_test(), seed=3, profile=PlayerProfile.idle())
    assert eng.run(deadline=time.monotonic() - 1) is RunStatus.TIMED_OUT
    assert eng.gs.tick == 0


def test_unknown_speed_rejected(engine):
    with pytest.raises(ValueError):
        engine.run(speed=7)


def test_fatal_tick_error_marks_run_failed(engine):
    def boom():
        raise RuntimeError("boom")

    engine.update_farm_growth = boom
    assert engine.tick() is False
    assert engine.gs.failed
    assert 'boom' in engine.gs.error
    assert engine.is_finished()
    assert engine.gs.event_log[-1].severity is Severity.ERROR
    with pytest.raises(SimulationFailed):
        engine.result()
    assert engine.tick() is False


def test_reset_starts_over(engine):
    engine.plant(1, 'carrot')
    step_tick(engine, 30)
    engine.reset()
    assert engine.gs.tick == 0
    assert engine.plot(1).is_empty


def test_invalid_settings_rejected():
    with pytest.raises(ValueError):
        SimulationSettings(log_level='verbose')
    with pytest.raises(ValueError):
        SimulationSettings(session_clock='sundial')


# ==================== Public API ====================

def test_public_api_round_trip():
    eng = new_game(seed=4, settings=SimulationSettings.fast_test(max_days=1), profile=PlayerProfile.idle())
    assert not is_finished(eng)
    step_tick(eng, 10_000)
    assert is_finished(eng)

    results = get_results(eng)
    assert results['day'] == 2
    assert results['tick'] == 16 * 60
    assert results['total_plots'] == 3
    assert not results['failed']


def test_run_one_simulation_returns_result():
    outcome = run_one_simulation(5, settings=SimulationSettings.fast_test(max_days=1))
    assert outcome.status is RunStatus.COMPLETED
    assert outcome.error is None
    result = outcome.result
    assert result.seed == 5
    assert result.max_days == 1
    assert result.snapshot.day == 2
    assert result.profile['name'] == 'default'
    assert isinstance(result.events, tuple)


def test_result_metrics_are_frozen(engine):
    for _ in range(120):
        engine.tick()
    result = engine.result()
    wasted = result.metrics.energy_wasted
    location_time = dict(result.metrics.location_time)

    with pytest.raises(FrozenInstanceError):
        result.metrics.energy_wasted = wasted + 1
    with pytest.raises(TypeError):
        result.metrics.location_time['home'] = 0

    for _ in range(120):
        engine.tick()
    assert engine.gs.metrics.location_time != location_time
    assert result.metrics.location_time == location_time
    assert result.metrics.energy_wasted == wasted
    assert detect_bottlenecks(result) == result.bottlenecks
