"""Command-line driver that runs the management unit and both engines together."""

from __future__ import annotations

import argparse
import signal
import sys
import threading
import time
from typing import TextIO

from .ev import EVEngine
from .iec import IECEngine
from .state import CommandQueue, EVCommand, IECCommand, SystemState
from .vmu import VehicleManagementUnit

DEFAULT_PERIOD = 2.5
DEFAULT_PAUSE_INTERVAL = 1.0
_CLEAR_SCREEN = "\033[2J\033[H"
_HANDLED_SIGNALS = (signal.SIGUSR1, signal.SIGINT, signal.SIGTERM)


class Simulation:
    """The management unit and the two engines sharing one state and two queues."""

    def __init__(
        self,
        display: TextIO | None = None,
        period: float = DEFAULT_PERIOD,
        pause_interval: float = DEFAULT_PAUSE_INTERVAL,
    ) -> None:
        if period < 0:
            raise ValueError("cycle period must not be negative")
        if pause_interval < 0:
            raise ValueError("pause interval must not be negative")
        self.display = display
        self.period = period
        self.pause_interval = pause_interval
        self.lock = threading.Lock()
        self.state = SystemState()
        self.ev_queue: CommandQueue[EVCommand] = CommandQueue()
        self.iec_queue: CommandQueue[IECCommand] = CommandQueue()
        self.vmu = VehicleManagementUnit(self.ev_queue, self.iec_queue, self.state, self.lock)
        self.ev = EVEngine(self.ev_queue, self.state, self.lock)
        self.iec = IECEngine(self.iec_queue, self.state, self.lock)
        self._stopped = False

    @property
    def running(self) -> bool:
        return self.vmu.running and not self._stopped

    @staticmethod
    def _serve(engine: EVEngine | IECEngine, queue: CommandQueue) -> None:
        if engine.running and engine.queue is not None and len(queue) > 0:
            engine.step()

    def _render(self) -> None:
        if self.display is None:
            return
        self.vmu.display_status(self.display)
        lines = self.ev.status_lines() + self.iec.status_lines()
        self.display.write("\n".join(lines) + "\n")
        self.display.flush()

    def run_cycle(self) -> SystemState:
        """Run one control cycle: speed, power split, engine replies, display."""
        if self._stopped:
            raise RuntimeError("simulation has been stopped")
        self.vmu.calculate_speed()
        self.vmu.control_engines()
        self._serve(self.ev, self.ev_queue)
        self._serve(self.iec, self.iec_queue)
        self.vmu.check_queue(self.ev_queue, True)
        self.vmu.check_queue(self.iec_queue, False)
        self._render()
        return self.state

    def run(self, cycles: int | None = None) -> int:
        """Run until stopped or until cycles iterations; return the active cycles run."""
        if cycles is not None and cycles < 0:
            raise ValueError("number of cycles must not be negative")
        iterations = 0
        active = 0
        while self.running and (cycles is None or iterations < cycles):
            iterations += 1
            if self.vmu.paused:
                time.sleep(self.pause_interval)
                continue
            started = time.monotonic()
            self.run_cycle()
            active += 1
            elapsed_ms = int((time.monotonic() - started) * 1000)
            self.vmu.elapsed_ms = elapsed_ms
            period_ms = int(self.period * 1000)
            if elapsed_ms < period_ms:
                self.vmu.delay_ms = period_ms - elapsed_ms
                time.sleep(self.vmu.delay_ms / 1000)
        return active

    def stop(self) -> None:
        """Send the end command to both engines and release every resource."""
        if self._stopped:
            return
        self.vmu.shutdown()
        self._serve(self.ev, self.ev_queue)
        self._serve(self.iec, self.iec_queue)
        self.ev.running = False
        self.iec.running = False
        self.ev.close()
        self.iec.close()
        self._stopped = True


def _non_negative_int(text: str) -> int:
    value = int(text)
    if value < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return value


def _non_negative_float(text: str) -> float:
    value = float(text)
    if value < 0:
        raise argparse.ArgumentTypeError("must not be negative")
    return value


def _parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hybridsim",
        description="Hybrid vehicle simulation: type 1 to accelerate, 2 to brake, 0 for none.",
    )
    parser.add_argument("--cycles", type=_non_negative_int, default=None,
                        help="stop after this many cycles (default: run until interrupted)")
    parser.add_argument("--period", type=_non_negative_float, default=DEFAULT_PERIOD,
                        help="length of one control cycle in seconds")
    parser.add_argument("--no-input", action="store_true",
                        help="do not read pedal commands from standard input")
    parser.add_argument("--quiet", action="store_true",
                        help="do not draw the status screen")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Run the simulation from the command line."""
    args = _parser().parse_args(argv)
    display = None if args.quiet else sys.stdout
    simulation = Simulation(display=display, period=args.period)

    def _on_signal(signum: int, _frame: object) -> None:
        simulation.vmu.handle_signal(signum)

    previous = {}
    if threading.current_thread() is threading.main_thread():
        for signum in _HANDLED_SIGNALS:
            previous[signum] = signal.signal(signum, _on_signal)

    try:
        if not args.no_input:
            reader = threading.Thread(
                target=simulation.vmu.read_input, args=(sys.stdin,), daemon=True
            )
            reader.start()
        if display is not None:
            display.write(_CLEAR_SCREEN)
            display.flush()
        simulation.run(args.cycles)
    finally:
        simulation.stop()
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    print("[VMU] Shut down complete.")
    return 0