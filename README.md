# powerrune

This package finds the spinning "power rune" target in camera frames. It then works out where
the target sits relative to the robot and predicts where the lit armor will be when a shot
arrives.

## How a frame is processed

1. **Detection.** `powerrune.detector.Detector.detect(frame)` takes the red and blue channels
   of a BGR image. It subtracts the enemy colour from the rune colour and thresholds the
   result. It then finds these features:
   - the arrow, from grouped lightlines;
   - the lit armor, a square contour whose four corners are about 90° apart;
   - the centre "R" mark.

   On success, `Detector.camera_points()` returns five pixel points: the armor's top, right,
   inner and left corners, then the centre R. Between frames the detector narrows its search
   to a region of interest around the rune. It resets that region to the whole image when a
   detection fails. `Detector.status` records which stage failed, as a
   `powerrune.utility.Status` value.

2. **Pose and angle.** `powerrune.calculator.Calculator.calculate(frame, camera_points)` does
   the following:
   - solves the world-to-camera pose from the five points (`powerrune.transforms.world_to_camera`);
   - chains the camera, gimbal and robot transforms;
   - rejects targets closer than 4 m or farther than 10 m;
   - tracks the rotation angle across armor switches;
   - votes on the direction of rotation once enough frames have been seen.

3. **Prediction.**
   - In small-rune mode the rune turns at a fixed angular speed.
   - In big-rune mode a background thread fits the curve `-a·cos(w·(t + t0)) + b·t + c` to the
     collected (time, angle) samples. The fit combines RANSAC-style rounds with robust least
     squares (`powerrune.fitting.ransac_fitting`, `least_square_estimate`). No prediction is
     made until a first fit is available.
   - On success the calculator sets these members:
     - `predict_robot`: the target in robot coordinates, in mm;
     - `predict_pitch` and `predict_yaw` (also `predict_pitch_yaw`): the aiming angles in
       degrees, with gravity drop taken into account;
     - `predict_pixel`: the predicted pixel.

`powerrune.power_rune.PowerRune` runs both stages on one image at a time.

## Installation

```
pip install .
```

To run the tests as well:

```
pip install ".[test]"
pytest
```

## Configuration

There are two ways to build parameters:

- `powerrune.param.Param.load(path)` reads a YAML file. An OpenCV-style `%YAML` first line and
  `!!opencv-matrix` nodes are accepted.
- `Param.from_mapping(data)` takes an already parsed mapping.

Missing numeric entries default to zero. An unknown `color` or `mode` raises `ValueError`.
`fps` must be set, because the calculator derives its timing from it.

An example layout, with illustrative values:

```yaml
color: red            # red or blue
mode: big             # small or big
fps: 100
image:
  width: 1280
  height: 1024
detect:
  brightness_threshold:
    red:  {arrow: 50, armor: 60}
    blue: {arrow: 50, armor: 60}
  local_roi: {distance_ratio: 1.2, width: 200}
  armor_center_vertical_distance_threshold: 10
  global_roi_length_ratio: 1.5
  arrow:
    lightline:
      area: {min: 20, max: 2000}
      aspect_ratio_max: 4
      num: {min: 3, max: 12}
    same_area_ratio_max: 5
    aspect_ratio: {min: 1.5, max: 10}
    area_max: 20000
  armor:
    lightline:
      area: {min: 100, max: 20000}
      contour_area: {min: 50, max: 10000}
      aspect_ratio: {min: 1, max: 10}
    same:
      area_ratio_max: 5
      distance: {min: 10, max: 200}
  centerR:
    area: {min: 20, max: 2000}
    aspect_ratio_max: 2
calculate:
  bullet_speed: {min: 20, default: 27}
  tvec_c2g: [0, 0, 0]
  compansate: {time: 0, pitch: 0, yaw: 0}
  intrinsic_matrix: [[1500, 0, 640], [0, 1500, 512], [0, 0, 1]]
  distortion: [0, 0, 0, 0, 0]
  armor:
    outside: {width: 0, height: 0, y: 0}
    inside: {width: 0, y: 0}
  fit_data_size: {min: 50, max: 1000}
```

## Library use

```python
from powerrune.param import Param
from powerrune.power_rune import PowerRune

param = Param.load("config.yaml")
with PowerRune(param) as rune:
    for image in frames:              # BGR images as numpy arrays
        if rune.run_once(image, pitch=0.0, yaw=0.0, roll=0.0):
            print(rune.calculator.predict_pitch_yaw)
```

`run_once` takes the gimbal angles in degrees and stamps the frame with `time.monotonic()`. It
returns `True` when the frame was detected and a prediction was made. Roll is accepted but has
no effect on the gimbal-to-robot transform.

`PowerRune` and `Calculator` can both be used as context managers. You can also call `close()`
directly. Closing stops the big-rune fitting thread.

Progress is reported through the `logging` module:

- fitted parameters at INFO level on the `powerrune.calculator` logger;
- poses, direction and predictions at DEBUG level.

## Command line

```
powerrune VIDEO --config config.yaml
```

This command reads a video frame by frame with `imageio`, pacing playback to the configured
frame rate. Each frame goes through the pipeline with zero gimbal angles. Without arguments it
reads `../video.avi` with `../config.yaml`.

## What it does not do

- **No windows.** The package opens no windows and waits for no keys. Detection overlays
  (feature outlines and the predicted point) are drawn into the numpy array
  `Detector.overlay`, and nothing shows it.
- **Results stay in memory.** The command does not print, save or send its predictions
  anywhere. To use the aiming angles, read them from the `Calculator` in your own code.
- **No gimbal link.** The package does not read gimbal angles from, or send them to, any
  device.