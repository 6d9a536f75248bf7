import signal

import pytest

from hybridsim.iec import IECEngine, gear_for_speed
from hybridsim.state import (
    CommandQueue,
    CommandType,
    IECCommand,
    QueueClosedError,
    SystemState,
)


@pytest.fixture
def queue():
    return CommandQueue()


@pytest.fixture
def state():
    return SystemState(iec_on=False, rpm_iec=0.0, transition_factor=0.0)


@pytest.fixture
def engine(queue, state):
    return IECEngine(queue, state)


def test_receive_cmd_start(engine, queue):
    queue.send(IECCommand(type=CommandType.START, power_level=0.205))
    engine.active = False
    engine.treat_values(engine.receive())
    assert engine.active is True


def test_receive_cmd_stop(engine, queue, state):
    state.iec_on = True
    state.rpm_iec = 1500.0
    queue.send(IECCommand(type=CommandType.STOP))
    engine.active = True
    engine.treat_values(engine.receive())
    assert engine.active is False
    assert state.iec_on is False
    assert state.rpm_iec == 0


def test_receive_cmd_set_power(engine, queue, state):
    sent = IECCommand(type=CommandType.SET_POWER, power_level=0.65)
    queue.send(sent)
    received = engine.receive()
    assert received == sent
    assert state.iec_on is False
    assert state.rpm_iec == 0


def test_receive_cmd_end(engine, queue):
    queue.send(IECCommand(type=CommandType.END))
    engine.running = True
    engine.treat_values(engine.receive())
    assert engine.running is False


def test_engine_on(engine, queue):
    engine.active = True
    queue.send(
        IECCommand(type=CommandType.START, global_velocity=90.0, power_level=0.50, ev_on=True)
    )
    engine.treat_values(engine.receive())
    assert engine.rpm == pytest.approx(2421.907399, abs=1e-6)
    assert engine.gear == 5
    assert engine.ev_on is True
    assert engine.fuel < 45.0


def test_engine_off_gives_zero_rpm(engine, state):
    engine.rpm = 900.0
    state.temp_iec = 30.0
    engine.treat_values(IECCommand(power_level=0.0, global_velocity=20.0))
    assert engine.rpm == 0
    assert engine.fuel == 45.0


@pytest.mark.parametrize(
    ("speed", "gear"),
    [(10.0, 1), (20.0, 2), (35.0, 3), (50.0, 4), (80.0, 5)],
)
def test_engine_gear(engine, speed, gear):
    engine.velocity = speed
    engine.calculate_values()
    assert engine.gear == gear


@pytest.mark.parametrize(
    ("speed", "gear"),
    [(0.0, 1), (15.0, 1), (15.1, 2), (30.0, 2), (40.0, 3), (70.0, 4), (70.1, 5), (200.0, 5)],
)
def test_gear_for_speed_boundaries(speed, gear):
    assert gear_for_speed(speed) == gear


def test_no_fuel_is_burned_when_tank_is_empty(engine):
    engine.fuel = 0.0
    engine.active = True
    engine.iec_percentage = 1.0
    engine.velocity = 60.0
    engine.calculate_values()
    assert engine.fuel == 0.0
    assert engine.rpm > 0


def test_step_replies_to_management_unit(engine, queue):
    queue.send(IECCommand(power_level=1.0, global_velocity=50.0))
    reply = engine.step()
    assert reply.to_vmu is True
    assert reply.check == "ok"
    assert reply.iec_active is True
    assert reply.fuel_iec == engine.fuel
    assert reply.rpm_iec == engine.rpm
    assert queue.receive() == reply


def test_step_passes_replies_back_untouched(engine, queue):
    original = IECCommand(to_vmu=True, fuel_iec=12.0, check="ok")
    queue.send(original)
    reply = engine.step()
    assert reply == original
    assert engine.fuel == 45.0
    assert queue.receive() == original


def test_receive_returns_none_when_stopped(engine):
    engine.running = False
    assert engine.receive() is None


def test_status_lines(engine):
    assert engine.status_lines() == [
        "IEC usage: 0.000000",
        "IEC Fuel (liters): 45.000000",
        "IEC engine RPM: 0.000000",
        "IEC gear: 0",
        "Vehicle speed: 0.000000",
    ]


def test_cleanup(engine, queue):
    engine.close()
    assert engine.queue is None
    assert engine.state is None
    assert engine.lock is None
    assert queue.closed
    with pytest.raises(QueueClosedError):
        engine.step()


def test_closed_queue_is_rejected():
    queue = CommandQueue()
    queue.close()
    with pytest.raises(QueueClosedError):
        IECEngine(queue)


def test_pause_signal(engine, capsys):
    engine.paused = False
    engine.handle_signal(signal.SIGUSR1)
    assert engine.paused is True
    engine.handle_signal(signal.SIGUSR1)
    assert engine.paused is False
    assert capsys.readouterr().out == "[IEC] Paused: true\n[IEC] Paused: false\n"


def test_shutdown_signal(engine, capsys):
    engine.running = True
    engine.handle_signal(signal.SIGINT)
    assert engine.running is False
    engine.running = True
    engine.handle_signal(signal.SIGTERM)
    assert engine.running is False
    assert capsys.readouterr().out.count("[IEC] Shutting down...") == 2