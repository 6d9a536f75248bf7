"""Electric engine: battery management and motor speed."""

from __future__ import annotations

import contextlib
import signal
import threading
import time
from queue import Empty, Full

from .state import (
    CIRCUMFERENCE_RATIO,
    MAX_BATTERY,
    RPM_EV_RATIO,
    TIRE_PERIMETER,
    CommandQueue,
    CommandType,
    EVCommand,
    QueueClosedError,
    SystemState,
)

INITIAL_BATTERY = 11.5
MIN_START_BATTERY = 10.0
REGENERATION_STEP = 1.0
DISCHARGE_STEP = 0.01
_POLL_INTERVAL = 0.001


class EVEngine:
    """Electric motor that answers the management unit's commands."""

    def __init__(
        self,
        queue: CommandQueue[EVCommand],
        state: SystemState | None = None,
        lock: threading.Lock | None = None,
    ) -> None:
        if queue.closed:
            raise QueueClosedError("EV command queue is closed")
        self.queue: CommandQueue[EVCommand] | None = queue
        self.state = state
        self.lock = lock if lock is not None else threading.Lock()
        self.running = True
        self.paused = False
        self.battery = INITIAL_BATTERY
        self.ev_percentage = 0.0
        self.velocity = 0.0
        self.rpm = 0.0
        self.active = False
        self.accelerator = False
        self.fuel = 0.0
        self.command: EVCommand | None = None

    def handle_signal(self, signum: int) -> None:
        """Toggle pause on SIGUSR1; stop on SIGINT or SIGTERM."""
        if signum == signal.SIGUSR1:
            self.paused = not self.paused
            print(f"[EV] Paused: {'true' if self.paused else 'false'}")
        elif signum in (signal.SIGINT, signal.SIGTERM):
            self.running = False
            print("[EV] Shutting down...")

    def _open_queue(self) -> CommandQueue[EVCommand]:
        if self.queue is None:
            raise QueueClosedError("EV engine has been closed")
        return self.queue

    def receive(self) -> EVCommand | None:
        """Wait for the next command; None once the engine stops running."""
        queue = self._open_queue()
        while self.running:
            try:
                return queue.receive()
            except Empty:
                time.sleep(_POLL_INTERVAL)
        return None

    def treat_values(self, command: EVCommand) -> None:
        """Apply a command from the management unit to the engine."""
        self.command = command
        if command.type == CommandType.START:
            if self.battery >= MIN_START_BATTERY:
                self.active = True
                command.check = "ok"
            else:
                command.ev_active = False
                self.active = False
                command.check = "no"
        elif command.type == CommandType.END:
            self.running = False

        self.velocity = command.global_velocity
        self.ev_percentage = command.power_level
        self.accelerator = command.accelerator
        self.fuel = command.iec_fuel
        self.active = self.ev_percentage != 0
        self.calculate_values()

    def calculate_values(self) -> None:
        """Update the battery charge and motor RPM."""
        if not self.accelerator and self.velocity != 0.0:
            self.battery += REGENERATION_STEP
        elif self.active and self.velocity > 0.0:
            self.battery -= DISCHARGE_STEP
        self.battery = min(max(self.battery, 0.0), MAX_BATTERY)
        self.rpm = RPM_EV_RATIO * (
            self.ev_percentage * ((self.velocity * CIRCUMFERENCE_RATIO) / TIRE_PERIMETER)
        )

    def step(self) -> EVCommand | None:
        """Handle one message from the queue and put the reply back on it."""
        queue = self._open_queue()
        command = self.receive()
        if command is None:
            return None
        with self.lock:
            if not command.to_vmu:
                self.treat_values(command)
                command.battery_ev = self.battery
                command.ev_active = self.active
                command.rpm_ev = self.rpm
                command.check = f"Battery sent: {self.battery:f}"
                command.to_vmu = True
            with contextlib.suppress(Full):
                queue.send(command)
        return command

    def status_lines(self) -> list[str]:
        """Lines describing the engine for the console display."""
        return [
            f"EV usage percentage: {self.ev_percentage:f}",
            f"EV battery percentage: {self.battery:f}",
            f"EV engine RPM: {self.rpm:f}",
            f"Vehicle speed: {self.velocity:f}",
        ]

    def close(self) -> None:
        """Release the queue, shared state and lock."""
        if self.queue is not None:
            self.queue.close()
            self.queue = None
        self.state = None
        self.lock = None