"""Risk controller for collateralized credit positions."""

__version__ = "0.1.0"
