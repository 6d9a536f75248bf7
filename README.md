# hybridsim

A small console simulation of a hybrid car. A vehicle management unit
(`hybridsim.vmu.VehicleManagementUnit`) decides, once per cycle, how power is
shared between an electric engine (`hybridsim.ev.EVEngine`) and an internal
combustion engine (`hybridsim.iec.IECEngine`). The unit sends each engine a
command over a bounded queue (`hybridsim.state.CommandQueue`); the engines
reply on the same queue with their RPM, battery charge and fuel level, which
the unit copies into the shared `hybridsim.state.SystemState`.

Each cycle the management unit:

- runs on electric power alone at up to 45 km/h while the battery is above 10 %;
- above 45 km/h, with at least 10 % battery and fuel in the tank, gives the
  electric engine a 45/speed share and the combustion engine the rest;
- when the battery is at or below 10 %, switches straight to combustion power
  if the car is parked, and otherwise shifts the load gradually (0.5 % per
  cycle) towards the combustion engine;
- shifts back towards electric power once the battery is full again;
- moves to electric power when the tank is empty, and releases the
  accelerator when the tank is empty and the speed is 43.5 km/h or more;
- marks the car as stopped when both battery and tank are empty, and clears
  that mark once the battery is full;
- caps the electric share so that the electric engine stays under its
  maximum RPM.

Speed follows a fixed acceleration curve while the accelerator is pressed
(`hybridsim.vmu.estimate_cycles`), drops by 0.3 km/h per cycle while coasting
and by 2 km/h per cycle while braking, never below zero.

The electric engine gains 1 % battery per cycle while the car moves with the
accelerator released and loses 0.01 % per cycle while it drives. The combustion
engine picks a gear from the speed (`hybridsim.iec.gear_for_speed`) and burns
fuel in proportion to its share of the load.

## Installing

```
pip install .
```

Add the `test` extra to run the test suite with pytest:

```
pip install .[test]
pytest
```

## Running

```
hybridsim
```

The screen shows speed, engine RPM, the electric/combustion ratio, battery,
fuel, the power mode and the unit's last message, followed by each engine's
own readings. Type a command and press Enter:

- `1` — accelerate
- `2` — brake
- `0` — release both pedals

Options:

- `--cycles N` — stop after N cycles (default: run until interrupted)
- `--period SECONDS` — length of one control cycle (default: 2.5)
- `--no-input` — do not read pedal commands from standard input
- `--quiet` — do not draw the status screen

Stop the simulation with Ctrl-C or `SIGTERM`; `SIGUSR1` pauses and resumes it.
The command relies on POSIX signals.

## Using it from Python

```python
from hybridsim.cli import Simulation

sim = Simulation(period=0)
sim.vmu.set_acceleration(True)
sim.run(cycles=20)
print(sim.vmu.format_status())
sim.stop()
```

`Simulation.run_cycle()` advances the whole system by one cycle and returns the
shared state. To drive the parts yourself, call the unit's `calculate_speed()`,
`control_engines()` and `check_queue()`, and each engine's `step()`, which
takes one command from its queue and puts the reply back.

## What it does not do

The management unit and both engines run inside one Python process and share
their state in memory. The engines cannot be started as separate programs, and
there is no inter-process channel between them. Engine temperatures are kept
in the state but are not simulated.