"""Shared vehicle state, engine command messages and the command queue."""

from __future__ import annotations

import copy
import threading
from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from queue import Empty, Full
from typing import Deque, Generic, Iterator, TypeVar

MIN_SPEED = 0.0
MAX_SPEED = 200.0
MAX_BATTERY = 100.0
MAX_FUEL = 100.0
MAX_TEMP_EV = 120
MAX_TEMP_IEC = 140
AMBIENT_TEMPERATURE = 25.0

TIRE_PERIMETER = 2.19912
MAX_EV_SPEED = 45.0
IS_EMPTY = 0.0
TEN_PERCENT = 10.0
CHARGE_FULL = 100.0
INACTIVE = 0.0
MAX_EV_RPM = 2728.909668
RPM_EV_RATIO = 8.0
ACT_ALONE = 1.0
HALF_PERCENT = 0.005
CIRCUMFERENCE_RATIO = 16.67
PARKED = 0.0
TWO_PERCENT = 0.02
NEAR_ZERO = 1e-6
MSG_SIZE = 80

QUEUE_CAPACITY = 10

T = TypeVar("T")


class PowerMode(IntEnum):
    """How the vehicle is currently being driven."""

    ELECTRIC_ONLY = 0
    HYBRID = 1
    COMBUSTION_ONLY = 2
    REGENERATIVE_BRAKING = 3
    PARKED = 4
    NONE = 5


class CommandType(IntEnum):
    """Kind of command sent from the management unit to an engine."""

    START = 0
    STOP = 1
    SET_POWER = 2
    END = 3


@dataclass
class SystemState:
    """State of the vehicle shared by the management unit and the engines."""

    accelerator: bool = False
    brake: bool = False
    speed: float = MIN_SPEED
    rpm_ev: float = 0.0
    rpm_iec: float = 0.0
    ev_on: bool = False
    iec_on: bool = False
    safety: bool = False
    temp_ev: float = AMBIENT_TEMPERATURE
    temp_iec: float = AMBIENT_TEMPERATURE
    battery: float = MAX_BATTERY
    fuel: float = MAX_FUEL
    power_mode: int = PowerMode.NONE
    transition_factor: float = 0.0
    transition_cycles: int = 0
    start_communication: bool = False
    ev_percentage: float = 0.0
    iec_percentage: float = 0.0
    debug: str = "Nops"

    def reset(self) -> None:
        """Put the driving fields back to their start-up values."""
        self.accelerator = False
        self.brake = False
        self.speed = MIN_SPEED
        self.rpm_ev = 0.0
        self.rpm_iec = 0.0
        self.ev_on = False
        self.iec_on = False
        self.temp_ev = AMBIENT_TEMPERATURE
        self.temp_iec = AMBIENT_TEMPERATURE
        self.battery = MAX_BATTERY
        self.fuel = MAX_FUEL
        self.power_mode = PowerMode.NONE
        self.transition_factor = 0.0
        self.transition_cycles = 0
        self.debug = "Nops"

    def clear_debug(self) -> None:
        """Empty the debug message."""
        self.debug = ""

    def append_debug(self, text: str) -> None:
        """Append text to the debug message, keeping it under MSG_SIZE characters."""
        room = MSG_SIZE - 1 - len(self.debug)
        if room > 0:
            self.debug += text[:room]


@dataclass
class EVCommand:
    """Message exchanged between the management unit and the electric engine."""

    type: CommandType | int = CommandType.START
    power_level: float = 0.0
    check: str = ""
    battery_ev: float = 0.0
    global_velocity: float = 0.0
    ev_active: bool = False
    rpm_ev: float = 0.0
    to_vmu: bool = False
    accelerator: bool = False
    iec_fuel: float = 0.0


@dataclass
class IECCommand:
    """Message exchanged between the management unit and the combustion engine."""

    type: CommandType | int = CommandType.START
    power_level: float = 0.0
    check: str = ""
    fuel_iec: float = 0.0
    temperature_iec: float = 0.0
    global_velocity: float = 0.0
    iec_active: bool = False
    rpm_iec: float = 0.0
    to_vmu: bool = False
    ev_on: bool = False


class QueueClosedError(RuntimeError):
    """Raised when a closed command queue is used."""


class CommandQueue(Generic[T]):
    """Bounded, non-blocking FIFO of command messages.

    Messages are copied on the way in, so the sender may keep changing its
    own object afterwards. ``send`` raises ``queue.Full`` when the queue is at
    capacity and ``receive`` raises ``queue.Empty`` when nothing is waiting.
    """

    def __init__(self, maxsize: int = QUEUE_CAPACITY) -> None:
        if maxsize < 1:
            raise ValueError("queue capacity must be at least 1")
        self._maxsize = maxsize
        self._items: Deque[T] = deque()
        self._lock = threading.Lock()
        self._closed = False

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def closed(self) -> bool:
        return self._closed

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def _ensure_open(self) -> None:
        if self._closed:
            raise QueueClosedError("command queue is closed")

    def send(self, message: T) -> None:
        """Put a copy of message at the back of the queue."""
        with self._lock:
            self._ensure_open()
            if len(self._items) >= self._maxsize:
                raise Full
            self._items.append(copy.copy(message))

    def receive(self) -> T:
        """Take the oldest message from the queue."""
        with self._lock:
            self._ensure_open()
            if not self._items:
                raise Empty
            return self._items.popleft()

    def drain(self) -> Iterator[T]:
        """Yield messages until the queue is empty."""
        while True:
            try:
                message = self.receive()
            except Empty:
                return
            yield message

    def close(self) -> None:
        """Close the queue, discarding anything still waiting."""
        with self._lock:
            self._closed = True
            self._items.clear()