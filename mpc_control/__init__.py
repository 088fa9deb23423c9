"""MPC Control - Model Predictive Control for a Kinematic Bicycle Vehicle

A closed-loop controller that steers and accelerates a simulated vehicle by
solving a short-horizon nonlinear optimal-control problem on every telemetry
frame, and replies with one steering/throttle command plus the predicted
trajectory.

## Architecture Overview

Every frame runs the same pipeline; no control state survives between frames.

### Stage 1: Latency Compensation (model.py)
Projects the measured pose forward by the actuation latency, holding the
fed-back steering and throttle constant.

### Stage 2: Vehicle Frame (transform.py)
Re-expresses the upcoming waypoints relative to the projected pose, so the
vehicle sits at the origin heading along +x.

### Stage 3: Reference Curve (path.py)
Fits a cubic y = f(x) through the waypoints and measures the cross-track error
cte = f(0) and heading error epsi = -atan(f'(0)).

### Stage 4: Trajectory Optimization (optimizer.py, solvers.py)
Plans N steps of the kinematic bicycle model minimizing tracking error, speed
deviation, actuation effort and actuation rate, subject to the model and the
actuator bounds. Solved with IPOPT (CasADi) or SLSQP (SciPy).

### Stage 5: Actuation (actuation.py)
Normalizes the first planned steering angle and acceleration to [-1, 1].

## Modules

### Core Control Modules
- `config.py` - Centralized configuration parameters with documentation
- `errors.py` - Exception hierarchy of the pipeline
- `transform.py` - Global/vehicle frame transforms
- `path.py` - Reference curve fit and tracking errors
- `model.py` - Kinematic bicycle model and latency compensation
- `optimizer.py` - Horizon problem formulation and solve
- `solvers.py` - NLP backends (IPOPT, SLSQP)
- `actuation.py` - Command normalization
- `controller.py` - Per-frame pipeline, failure policy, message framing

### Communication & Data
- `server.py` - WebSocket server and logging setup
- `component_modes.py` - Stage toggles for isolation testing
- `data_collector.py` - CSV logging of telemetry, state and control
- `simulation.py` - Offline closed-loop simulation

### Visualization
- `plot_styles.py` - Shared plotting utilities and color scheme
- `diagnostic_plots.py` - Trajectory, tracking error, actuation and solver plots
- `plot_results.py` - CLI for visualization tools

## Quick Start

```bash
# Serve the simulator on port 4567
python -m mpc_control

# Offline run against the built-in track, then plot it
python -m mpc_control.simulation --steps 300
python -m mpc_control.plot_results --save
```

## Configuration

All tunables are centralized in `config.py`:
- Physical: Lf, steering bound
- Horizon: N, dt, reference speed, cost weights
- Solver: backend, time and iteration limits, failure policy
- Transport: host, port, actuation delay
"""

__version__ = "0.1.0"

from .config import ControllerConfig, CostWeights
from .controller import ControlReply, MPCController, Telemetry
from .data_collector import DataCollector
from .errors import (
    ControlError,
    DegenerateWaypointsError,
    InsufficientPointsError,
    MalformedTelemetryError,
    NonFiniteValueError,
    SolverFailureError,
)
from .optimizer import solve_horizon

__all__ = [
    "ControllerConfig",
    "CostWeights",
    "MPCController",
    "Telemetry",
    "ControlReply",
    "DataCollector",
    "solve_horizon",
    "ControlError",
    "InsufficientPointsError",
    "DegenerateWaypointsError",
    "MalformedTelemetryError",
    "NonFiniteValueError",
    "SolverFailureError",
]
