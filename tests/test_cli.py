import io
import signal

import pytest

from hybridsim.cli import Simulation, main
from hybridsim.state import PowerMode


def _sim(**kwargs):
    kwargs.setdefault("period", 0)
    kwargs.setdefault("pause_interval", 0)
    return Simulation(**kwargs)


def test_run_cycle_accelerating_increases_speed():
    sim = _sim()
    sim.vmu.set_acceleration(True)
    state = sim.run_cycle()
    assert state.speed > 0.0
    sim.stop()


def test_run_cycle_low_speed_is_electric_only():
    sim = _sim()
    sim.vmu.set_acceleration(True)
    state = sim.run_cycle()
    assert state.power_mode == PowerMode.ELECTRIC_ONLY
    assert state.ev_percentage == pytest.approx(1.0)
    assert state.iec_percentage == pytest.approx(0.0)
    sim.stop()


def test_run_cycle_syncs_engine_readings_into_state():
    sim = _sim()
    sim.vmu.set_acceleration(True)
    state = sim.run_cycle()
    assert state.battery == sim.ev.battery
    assert state.fuel == sim.iec.fuel
    assert state.rpm_ev == sim.ev.rpm
    assert state.rpm_iec == sim.iec.rpm


def test_run_cycle_leaves_queues_empty():
    sim = _sim()
    sim.vmu.set_acceleration(True)
    for _ in range(4):
        sim.run_cycle()
    assert len(sim.ev_queue) == 0
    assert len(sim.iec_queue) == 0


def test_run_counts_cycles_and_draws_status():
    out = io.StringIO()
    sim = _sim(display=out)
    assert sim.run(3) == 3
    assert sim.vmu.counter == 3
    text = out.getvalue()
    assert text.count("Speed:") == 3
    assert "EV usage percentage:" in text
    assert "IEC gear:" in text


def test_run_with_no_cycles_does_nothing():
    sim = _sim()
    assert sim.run(0) == 0
    assert sim.state.speed == 0.0


def test_run_rejects_negative_cycles():
    sim = _sim()
    with pytest.raises(ValueError):
        sim.run(-1)


def test_negative_period_rejected():
    with pytest.raises(ValueError):
        Simulation(period=-1)


def test_paused_simulation_does_not_move():
    sim = _sim()
    sim.vmu.set_acceleration(True)
    sim.vmu.paused = True
    assert sim.run(2) == 0
    assert sim.state.speed == 0.0


def test_coasting_slows_vehicle():
    sim = _sim()
    sim.vmu.set_acceleration(True)
    sim.run(5)
    top = sim.state.speed
    sim.vmu.set_acceleration(False)
    sim.run_cycle()
    assert sim.state.speed < top


def test_stop_ends_engines_and_closes_queues():
    sim = _sim()
    sim.run(1)
    sim.stop()
    assert sim.running is False
    assert sim.ev.running is False
    assert sim.iec.running is False
    assert sim.ev.queue is None
    assert sim.iec.queue is None
    assert sim.ev_queue.closed
    assert sim.iec_queue.closed


def test_stop_is_idempotent_and_run_after_stop_does_nothing():
    sim = _sim()
    sim.stop()
    sim.stop()
    assert sim.run(3) == 0
    with pytest.raises(RuntimeError):
        sim.run_cycle()


def test_signal_shutdown_stops_run_loop(capsys):
    sim = _sim()
    sim.vmu.handle_signal(signal.SIGTERM)
    assert sim.run(5) == 0
    assert "[VMU] Shutting down..." in capsys.readouterr().out


def test_main_runs_and_shuts_down(capsys):
    assert main(["--cycles", "2", "--period", "0", "--no-input"]) == 0
    out = capsys.readouterr().out
    assert "Speed:" in out
    assert out.rstrip().endswith("[VMU] Shut down complete.")


def test_main_quiet_prints_only_shutdown(capsys):
    assert main(["--cycles", "1", "--period", "0", "--no-input", "--quiet"]) == 0
    assert capsys.readouterr().out == "[VMU] Shut down complete.\n"


def test_main_restores_signal_handlers(capsys):
    before = signal.getsignal(signal.SIGUSR1)
    result = main(["--cycles", "0", "--period", "0", "--no-input", "--quiet"])
    assert result == 0
    assert capsys.readouterr().out == "[VMU] Shut down complete.\n"
    assert signal.getsignal(signal.SIGUSR1) is before


def test_main_rejects_negative_cycles():
    with pytest.raises(SystemExit):
        main(["--cycles", "-1"])