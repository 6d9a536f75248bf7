"""Internal combustion engine: gears, fuel consumption and engine speed."""

from __future__ import annotations

import contextlib
import signal
import threading
import time
from queue import Empty, Full

from .state import (
    CIRCUMFERENCE_RATIO,
    TIRE_PERIMETER,
    CommandQueue,
    CommandType,
    IECCommand,
    QueueClosedError,
    SystemState,
)

INITIAL_FUEL = 45.0
AVERAGE_CONSUMPTION_KM_PER_L = 14.7
GEAR_RATIOS = (3.83, 2.36, 1.69, 1.31, 1.00)
FINAL_DRIVE_RATIO = 3.55
_GEAR_LIMITS = ((15.0, 1), (30.0, 2), (40.0, 3), (70.0, 4))
_POLL_INTERVAL = 0.001


def gear_for_speed(speed: float) -> int:
    """Gear (1 to 5) used at the given speed in km/h."""
    for limit, gear in _GEAR_LIMITS:
        if speed <= limit:
            return gear
    return len(GEAR_RATIOS)


class IECEngine:
    """Combustion engine that answers the management unit's commands."""

    def __init__(
        self,
        queue: CommandQueue[IECCommand],
        state: SystemState | None = None,
        lock: threading.Lock | None = None,
    ) -> None:
        if queue.closed:
            raise QueueClosedError("IEC command queue is closed")
        self.queue: CommandQueue[IECCommand] | None = queue
        self.state = state
        self.lock = lock if lock is not None else threading.Lock()
        self.running = True
        self.paused = False
        self.fuel = INITIAL_FUEL
        self.iec_percentage = 0.0
        self.velocity = 0.0
        self.active = False
        self.rpm = 0.0
        self.gear = 0
        self.ev_on = False
        self.command: IECCommand | None = None

    def handle_signal(self, signum: int) -> None:
        """Toggle pause on SIGUSR1; stop on SIGINT or SIGTERM."""
        if signum == signal.SIGUSR1:
            self.paused = not self.paused
            print(f"[IEC] Paused: {'true' if self.paused else 'false'}")
        elif signum in (signal.SIGINT, signal.SIGTERM):
            self.running = False
            print("[IEC] Shutting down...")

    def _open_queue(self) -> CommandQueue[IECCommand]:
        if self.queue is None:
            raise QueueClosedError("IEC engine has been closed")
        return self.queue

    def receive(self) -> IECCommand | None:
        """Wait for the next command; None once the engine stops running."""
        queue = self._open_queue()
        while self.running:
            try:
                return queue.receive()
            except Empty:
                time.sleep(_POLL_INTERVAL)
        return None

    def treat_values(self, command: IECCommand) -> None:
        """Apply a command from the management unit to the engine."""
        self.command = command
        if command.type == CommandType.STOP:
            if self.state is not None:
                self.state.iec_on = False
                self.state.rpm_iec = 0.0
        elif command.type == CommandType.END:
            self.running = False

        self.velocity = command.global_velocity
        self.iec_percentage = command.power_level
        self.ev_on = command.ev_on
        self.active = self.iec_percentage != 0.0
        self.calculate_values()

    def calculate_values(self) -> None:
        """Update the gear, remaining fuel and engine RPM."""
        self.gear = gear_for_speed(self.velocity)

        if self.active and self.fuel > 0.0:
            self.fuel -= self.iec_percentage * (
                self.velocity / (AVERAGE_CONSUMPTION_KM_PER_L * 36000.0)
            )
        elif not self.active:
            self.rpm = 0.0

        if self.active:
            wheel_rpm = (self.velocity * CIRCUMFERENCE_RATIO) / TIRE_PERIMETER
            self.rpm = wheel_rpm * (GEAR_RATIOS[self.gear - 1] * FINAL_DRIVE_RATIO)

    def step(self) -> IECCommand | None:
        """Handle one message from the queue and put the reply back on it."""
        queue = self._open_queue()
        command = self.receive()
        if command is None:
            return None
        with self.lock:
            if not command.to_vmu:
                self.treat_values(command)
                command.fuel_iec = self.fuel
                command.rpm_iec = self.rpm
                command.iec_active = self.active
                command.check = "ok"
                command.to_vmu = True
            with contextlib.suppress(Full):
                queue.send(command)
        return command

    def status_lines(self) -> list[str]:
        """Lines describing the engine for the console display."""
        return [
            f"IEC usage: {self.iec_percentage:f}",
            f"IEC Fuel (liters): {self.fuel:f}",
            f"IEC engine RPM: {self.rpm:f}",
            f"IEC gear: {self.gear:d}",
            f"Vehicle speed: {self.velocity:f}",
        ]

    def close(self) -> None:
        """Release the queue, shared state and lock."""
        if self.queue is not None:
            self.queue.close()
            self.queue = None
        self.state = None
        self.lock = None