"""Power rune detection, pose solving and rotation prediction from camera frames."""

__version__ = "0.1.0"