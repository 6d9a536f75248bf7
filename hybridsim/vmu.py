"""Vehicle management unit: speed model and power split between the engines."""

from __future__ import annotations

import contextlib
import signal
import sys
import threading
from dataclasses import dataclass
from queue import Full
from typing import Iterable, TextIO

from .state import (
    ACT_ALONE,
    CHARGE_FULL,
    CIRCUMFERENCE_RATIO,
    HALF_PERCENT,
    INACTIVE,
    IS_EMPTY,
    MAX_EV_RPM,
    MAX_EV_SPEED,
    MIN_SPEED,
    MSG_SIZE,
    NEAR_ZERO,
    PARKED,
    RPM_EV_RATIO,
    TEN_PERCENT,
    TIRE_PERIMETER,
    TWO_PERCENT,
    CommandQueue,
    CommandType,
    EVCommand,
    IECCommand,
    PowerMode,
    SystemState,
)

CYCLES_PER_STEP = 3.0
ACCELERATION_LINEAR = 1.13
ACCELERATION_QUADRATIC = 0.00162
MAX_ESTIMATED_CYCLES = 1050
COASTING_DECELERATION = 0.3
BRAKING_DECELERATION = 2.0
ACCELERATOR_CUTOFF_MARGIN = 1.5

_MODE_NAMES = {
    PowerMode.ELECTRIC_ONLY: "Electric Only",
    PowerMode.HYBRID: "Hybrid",
    PowerMode.COMBUSTION_ONLY: "Combustion Only",
}

MSG_FUEL_EMPTY = "Fuel empty, starting EV transition cycle"
MSG_IEC_TRANSITION = "IEC transition in progress"
MSG_COMBUSTION_ONLY = "Car running at combustion only mode"
MSG_EV_TRANSITION = "EV transition in progress"
MSG_HYBRID_TRANSITION = "Hybrid EV transition activated"
MSG_STANDARD_HYBRID = "Car running at standard hybrid mode (hybrid)"
MSG_STANDARD_EV = "Car running at standard hybrid mode (EV only)"
MSG_DEFAULT = "Default engine command"


def _speed_after(cycles: int) -> float:
    steps = cycles / CYCLES_PER_STEP
    return steps * (ACCELERATION_LINEAR - ACCELERATION_QUADRATIC * steps)


def estimate_cycles(speed: float) -> int:
    """Number of acceleration cycles whose speed curve first exceeds speed."""
    cycles = 0
    estimated = 0.0
    while estimated <= speed:
        estimated = _speed_after(cycles)
        if cycles >= MAX_ESTIMATED_CYCLES:
            break
        cycles += 1
    return cycles


def _nearly_equal(a: float, b: float) -> bool:
    return abs(a - b) < NEAR_ZERO


@dataclass(frozen=True)
class _Conditions:
    battery_empty: bool
    fuel_empty: bool
    battery_not_empty: bool
    ev_not_full: bool
    car_stopped: bool
    iec_transition: bool
    ev_transition: bool
    speed_in_ev_range: bool
    battery_full: bool
    parked: bool

    @property
    def fuel_not_empty(self) -> bool:
        return not self.fuel_empty

    @property
    def speed_above_ev_range(self) -> bool:
        return not self.speed_in_ev_range


class VehicleManagementUnit:
    """Controls speed and decides how power is shared between the two engines."""

    def __init__(
        self,
        ev_queue: CommandQueue[EVCommand] | None = None,
        iec_queue: CommandQueue[IECCommand] | None = None,
        state: SystemState | None = None,
        lock: threading.Lock | None = None,
    ) -> None:
        self.ev_queue: CommandQueue[EVCommand] = ev_queue if ev_queue is not None else CommandQueue()
        self.iec_queue: CommandQueue[IECCommand] = (
            iec_queue if iec_queue is not None else CommandQueue()
        )
        self.state = state if state is not None else SystemState()
        self.lock = lock if lock is not None else threading.Lock()
        self.state.transition_cycles = 0
        self.running = True
        self.paused = False
        self.finish = False
        self.car_stop = False
        self.transition_ev = False
        self.transition_iec = False
        self.cycles_quantity = 0
        self.last_message = ""
        self.safety_count = 0
        self.local_count = 0
        self.counter = 0
        self.elapsed_ms = 0
        self.delay_ms = 0

    def handle_signal(self, signum: int) -> None:
        """Toggle pause on SIGUSR1; stop on SIGINT or SIGTERM."""
        if signum == signal.SIGUSR1:
            self.paused = not self.paused
            print(f"[VMU] Paused: {'true' if self.paused else 'false'}")
        elif signum in (signal.SIGINT, signal.SIGTERM):
            self.running = False
            print("[VMU] Shutting down...")

    def calculate_speed(self) -> float:
        """Advance the vehicle speed by one cycle and return it."""
        with self.lock:
            state = self.state
            if state.accelerator:
                self.cycles_quantity = estimate_cycles(state.speed)
                state.speed = _speed_after(self.cycles_quantity)
            elif not state.brake:
                state.speed = max(state.speed - COASTING_DECELERATION, MIN_SPEED)
            else:
                state.speed = max(state.speed - BRAKING_DECELERATION, MIN_SPEED)
            return state.speed

    def _conditions(self, speed: float, battery: float, fuel: float) -> _Conditions:
        ev_percentage = self.state.ev_percentage
        return _Conditions(
            battery_empty=_nearly_equal(battery, IS_EMPTY),
            fuel_empty=_nearly_equal(fuel, IS_EMPTY),
            battery_not_empty=battery > IS_EMPTY,
            ev_not_full=ev_percentage < ACT_ALONE,
            car_stopped=self.car_stop,
            iec_transition=self.transition_iec,
            ev_transition=self.transition_ev,
            speed_in_ev_range=speed <= MAX_EV_SPEED,
            battery_full=battery > CHARGE_FULL or _nearly_equal(battery, CHARGE_FULL),
            parked=_nearly_equal(speed, PARKED),
        )

    def _debug(self, text: str) -> None:
        self.state.clear_debug()
        self.state.append_debug(text)

    def _set_split(self, ev: float, iec: float) -> None:
        self.state.ev_percentage = ev
        self.state.iec_percentage = iec

    def _shift(self, amount: float) -> None:
        self.state.ev_percentage += amount
        self.state.iec_percentage -= amount

    def _combustion_only(self) -> None:
        self._set_split(INACTIVE, ACT_ALONE)
        self.state.power_mode = PowerMode.COMBUSTION_ONLY
        self.state.ev_on = False
        self._debug(MSG_COMBUSTION_ONLY)

    def _advance_iec_transition(self) -> None:
        self._debug(MSG_IEC_TRANSITION)
        self._shift(-HALF_PERCENT)
        self.state.power_mode = PowerMode.HYBRID
        if self.state.iec_percentage >= ACT_ALONE:
            self._combustion_only()

    def _advance_ev_transition(self, c: _Conditions, speed: float) -> None:
        state = self.state
        self._debug(MSG_EV_TRANSITION)
        if c.speed_in_ev_range and c.fuel_not_empty:
            self._shift(HALF_PERCENT)
            state.power_mode = PowerMode.HYBRID
            if state.ev_percentage >= ACT_ALONE:
                self._set_split(ACT_ALONE, INACTIVE)
                state.power_mode = PowerMode.ELECTRIC_ONLY
                self.transition_ev = False
        elif c.speed_above_ev_range and c.fuel_not_empty:
            ev_share = MAX_EV_SPEED / speed
            iec_share = (speed - MAX_EV_SPEED) / speed
            state.power_mode = PowerMode.HYBRID
            self._shift(HALF_PERCENT)
            self._debug(MSG_HYBRID_TRANSITION)
            if state.ev_percentage >= ev_share:
                self._set_split(ev_share, iec_share)
                self.transition_ev = False
        elif c.fuel_empty:
            if c.speed_in_ev_range:
                self._set_split(ACT_ALONE, INACTIVE)
            else:
                self._shift(TWO_PERCENT)
            if state.ev_percentage >= ACT_ALONE:
                self.transition_ev = False
                self._set_split(ACT_ALONE, INACTIVE)
            state.power_mode = PowerMode.ELECTRIC_ONLY

    def control_engines(self) -> tuple[EVCommand, IECCommand]:
        """Decide the power split for this cycle and send it to both engines."""
        with self.lock:
            state = self.state
            speed = state.speed
            battery = state.battery
            fuel = state.fuel
            accelerator = state.accelerator

            c = self._conditions(speed, battery, fuel)
            if c.car_stopped and c.battery_full:
                self.car_stop = False
            elif c.battery_empty and c.fuel_empty:
                accelerator = False
                self.car_stop = True
            elif c.battery_not_empty and c.fuel_empty and not c.ev_transition and c.ev_not_full:
                self._debug(MSG_FUEL_EMPTY)
                self.transition_ev = True
            elif (c.iec_transition and c.battery_full) or c.fuel_empty:
                self.transition_iec = False
                self.transition_ev = True

            c = self._conditions(speed, battery, fuel)
            if c.iec_transition:
                self._advance_iec_transition()
            elif c.ev_transition and c.ev_not_full:
                self._advance_ev_transition(c, speed)
            elif (
                c.speed_above_ev_range
                and battery >= TEN_PERCENT
                and c.fuel_not_empty
                and not c.ev_transition
            ):
                self._debug(MSG_STANDARD_HYBRID)
                state.power_mode = PowerMode.HYBRID
                self._set_split(MAX_EV_SPEED / speed, (speed - MAX_EV_SPEED) / speed)
            elif c.speed_in_ev_range and battery > TEN_PERCENT and not c.ev_transition:
                self._debug(MSG_STANDARD_EV)
                self._set_split(ACT_ALONE, INACTIVE)
                state.power_mode = PowerMode.ELECTRIC_ONLY
            elif battery <= TEN_PERCENT and c.fuel_not_empty and not c.ev_transition:
                if c.parked:
                    self._combustion_only()
                else:
                    self.transition_iec = True
            else:
                self._debug(MSG_DEFAULT)

            if c.fuel_empty and speed >= MAX_EV_SPEED - ACCELERATOR_CUTOFF_MARGIN:
                state.accelerator = False

            wheel_rpm = (state.speed * CIRCUMFERENCE_RATIO) / TIRE_PERIMETER
            if RPM_EV_RATIO * state.ev_percentage * wheel_rpm > MAX_EV_RPM:
                limited = MAX_EV_RPM / ((speed * CIRCUMFERENCE_RATIO) / TIRE_PERIMETER)
                state.ev_percentage = limited / RPM_EV_RATIO
                state.iec_percentage = ACT_ALONE - state.ev_percentage

            ev_command = EVCommand(
                type=CommandType.START,
                power_level=state.ev_percentage,
                global_velocity=speed,
                to_vmu=False,
                accelerator=accelerator,
                iec_fuel=state.fuel,
            )
            iec_command = IECCommand(
                type=CommandType.START,
                power_level=state.iec_percentage,
                global_velocity=speed,
                to_vmu=False,
                ev_on=state.ev_on,
            )
            with contextlib.suppress(Full):
                self.ev_queue.send(ev_command)
            with contextlib.suppress(Full):
                self.iec_queue.send(iec_command)
            return ev_command, iec_command

    def check_queue(self, queue: CommandQueue, ev: bool) -> int:
        """Take engine replies from queue into the shared state.

        Returns how many replies addressed to this unit were read. A command
        still waiting for its engine is put back on the queue.
        """
        self.local_count = 0
        last = None
        with self.lock:
            state = self.state
            for message in queue.drain():
                last = message
                if message.to_vmu:
                    self.local_count += 1
                    self.last_message = message.check
                    self.safety_count = 0
                    if ev:
                        state.rpm_ev = message.rpm_ev
                        state.battery = message.battery_ev
                        state.ev_on = message.ev_active
                    else:
                        state.rpm_iec = message.rpm_iec
                        state.fuel = max(message.fuel_iec, 0.0)
                        state.iec_on = message.iec_active
                elif ev:
                    self.safety_count = (self.safety_count + 1) % 256
            if last is not None and not last.to_vmu:
                with contextlib.suppress(Full):
                    queue.send(last)
        return self.local_count

    def set_acceleration(self, accelerate: bool) -> None:
        """Press or release the accelerator; pressing it releases the brake."""
        with self.lock:
            self.state.accelerator = accelerate
            if accelerate:
                self.state.brake = False

    def set_braking(self, brake: bool) -> None:
        """Press or release the brake; pressing it releases the accelerator."""
        with self.lock:
            self.state.brake = brake
            if brake:
                self.state.accelerator = False

    def _engines_off(self) -> None:
        with self.lock:
            self.state.iec_on = False
            self.state.ev_on = False

    def process_input(self, line: str) -> bool:
        """Apply one pedal command: 1 accelerate, 2 brake, 0 neither.

        Returns whether the line was a command that was acted on.
        """
        command = line.rstrip("\r\n")
        if command == "0" and not self.finish:
            self.set_braking(False)
            self.set_acceleration(False)
            self._engines_off()
        elif command == "1" and not self.finish:
            self.set_acceleration(True)
            self.set_braking(False)
        elif command == "2":
            self.set_acceleration(False)
            self.set_braking(True)
            self._engines_off()
        else:
            return False
        return True

    def read_input(self, stream: Iterable[str]) -> None:
        """Read pedal commands line by line until the stream ends or the unit stops."""
        for line in stream:
            if not self.running:
                break
            self.process_input(line)

    def format_status(self) -> str:
        """Text of the console status screen."""
        s = self.state
        mode = _MODE_NAMES.get(s.power_mode, "None").ljust(21)
        return (
            f"\n\nSpeed: {s.speed:f} km/h\n\n"
            f"RPM EV: {s.rpm_ev:04.0f}\n"
            f"RPM IEC: {s.rpm_iec:04.0f}\n\n"
            f"Electric engine ratio: {s.ev_percentage:f} \n"
            f"Combustion engine ratio: {s.iec_percentage:f} \n"
            f"EV: {'ON ' if s.ev_on else 'OFF'}\n"
            f"IEC: {'ON ' if s.iec_on else 'OFF'}\n\n"
            f"Battery: {s.battery:06.2f}%\n"
            f"Fuel (liters): {s.fuel:05.3f}\n\n"
            f"Power mode: {mode}\n"
            f"Accelerator: {'ON ' if s.accelerator else 'OFF'}\n"
            f"Brake: {'ON ' if s.brake else 'OFF'}\n\n"
            f"Counter: {self.counter:03d}\n"
            f"Remainder: {self.delay_ms}\n"
            f"Elapsed: {self.elapsed_ms}\n\n"
            f"Last message: {s.debug.ljust(MSG_SIZE - 1)}\n"
            "Type `1` for accelerate, `2` for brake, or `0` for none, and press Enter:\n"
        )

    def display_status(self, stream: TextIO | None = None) -> None:
        """Redraw the status screen on stream (standard output by default)."""
        out = stream if stream is not None else sys.stdout
        out.write("\033[H" + self.format_status())
        out.flush()
        self.counter = (self.counter + 1) % 256

    def shutdown(self) -> None:
        """Tell both engines to end and stop the unit."""
        self.running = False
        for queue, command in (
            (self.ev_queue, EVCommand(type=CommandType.END, to_vmu=False)),
            (self.iec_queue, IECCommand(type=CommandType.END, to_vmu=False)),
        ):
            if not queue.closed:
                with contextlib.suppress(Full):
                    queue.send(command)