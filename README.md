# scanfit

Fit geometric shapes to 2D laser scans and keep them up to date as new
beams arrive.

Every beam is a row of `x, y, d, an`: the hit point, the measured range and
the beam angle, seen from a known scanner position. `scanfit` groups
continuous beams, fits candidate shapes to each group, and keeps the best
one as an entity on a map. Later beams that fit a mapped entity refine it
instead of starting a new group.

Two shape models are provided:

- **superellipses**, `p = [xc, yc, th, a, b, e]`: centre, orientation, two
  half-axes and a shape exponent (`ellipse_*` functions);
- **lines** in normal form, `p = [r, a]`: distance from the origin and the
  angle of the normal (`line_*` functions).

For each model there are residuals of the implicit function, Jacobians with
respect to parameters, pose, measurement and measurement errors, a
dilution-of-precision covariance, a least-squares fit and a safety check on
the parameters.

## Installation

```
pip install .
```

For the tests: `pip install .[test]`, then `pytest`.

## Modules

- `scanfit.functions` — `ellipse_residuals`, `ellipse_jacobian`,
  `ellipse_dop`, `ellipse_initial_guess`, `ellipse_least_squares`,
  `ellipse_safety`, and the line counterparts `line_residuals`,
  `line_jacobian`, `line_dop`, `line_least_squares`, `line_safety`; also
  `sgn` and `sample_covariance`. `ellipse_least_squares` runs eight bounded
  fits from different starting points and keeps the finite one with the
  lowest cost. `ellipse_safety` clamps the shape exponent to `[0.1, 1.9]` and
  wraps the orientation into `[0, 2π)`, changing `p` in place.
- `scanfit.scan` — `Scan`, built from ranges and beam angles with
  `Scan.from_ranges` and saved with `Scan.write_csv` (a `,<rows>` header,
  then one `x,y,d,an` line per beam); `scan_angles` for evenly spaced beams
  (1080 beams over 1.5π by default) and `yaw_from_quaternion` for headings.
- `scanfit.model` — `Model` (the functions and filter tuning of one shape
  model), `Entity`, `Measurement`, `Aggregate` and the `State` enum of the
  processing machines, with the continuity tolerances, aggregate size and
  association threshold as module constants.
- `scanfit.ekf` — `Ekf`, whose `update` returns `False` and leaves the
  parameters alone when a beam's Mahalanobis distance exceeds the tolerance,
  and `Iekf`, the iterated filter that refines a mapped entity.
- `scanfit.fsm` — `Fsm`, one per model over a group of beams, moving from
  flexible to strict acceptance, refitting by least squares on rejection,
  and ending closed or sunk.
- `scanfit.handler` — `EntityMap` (association by Mahalanobis distance and
  augmentation of entities) and `Handler`, which feeds beams through
  association, continuity checks and the FSMs (`process_measurement`,
  `preprocess_scan`, `close_fsms`, `end_scan`).
- `scanfit.visualizer` — `Visualizer` drawing points, superellipses and lines
  with matplotlib; `ellipse_outline` and `line_endpoints` compute the
  geometry on their own.
- `scanfit.urg_timing` — helpers for a scanning range finder's data:
  `ClockSynchronizer` maps the device's millisecond counter onto system time
  with a moving average, `angular_time_offset`, `median_offset`,
  `ranges_from_distances` (millimetres to metres, zero to NaN) and
  `echoes_from_distances` for multi-echo buffers.

## Example

Fit a line to a wall:

```python
import numpy as np
from scanfit.scan import Scan, scan_angles
from scanfit.functions import line_least_squares, line_residuals

angles = scan_angles(50, 0.5)
ranges = 2.0 / np.cos(angles)          # a wall at x = 2
scan = Scan.from_ranges(ranges, angles, (0.0, 0.0), 0.0)

p = line_least_squares(scan.location, scan.data)
print(p)                                # about [2.0, 0.0]
print(np.abs(line_residuals(p, scan.location, scan.data)).max())
```

Run beams through a handler with a line model:

```python
import numpy as np
from scanfit import functions as f
from scanfit.handler import Handler
from scanfit.model import Measurement, Model

line = Model(
    residuals=f.line_residuals,
    jacobian=f.line_jacobian,
    parameter_indexes=[0, 1],
    error_indexes=[6, 7],
    dop=f.line_dop,
    least_squares=f.line_least_squares,
    safety=f.line_safety,
    w_a=np.eye(2) * 1e-4,
    w_s=np.eye(2) * 1e-4,
    q_a=np.eye(2) * 1e-6,
    q_s=np.eye(2) * 1e-6,
    mahalanobis_strict=1.0,
    mahalanobis_flex=5.0,
    parameter_count=2,
    dop_sigma=0.01,
    model_index=1,
)

handler = Handler([line])
for row in scan.data:
    handler.process_measurement(Measurement(row, scan.location))
handler.end_scan()
print(len(handler.map.entities))
```

## What it does not do

`scanfit` works on scans already in memory. It does not connect to a range
finder, subscribe to a stream of scans or odometry, or configure a device;
`scanfit.urg_timing` only processes timestamps and distance buffers handed
to it. There is no command-line program and no storage of the map beyond the
Python objects themselves; `Scan.write_csv` is the only file output.