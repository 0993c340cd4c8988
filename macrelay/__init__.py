"""Real-time relay between one remote device and many web viewers."""

__version__ = "1.0.0"
