"""Local visualization components."""

from serial_pubsub.visualization.console import ConsoleVisualizer

__all__ = ["ConsoleVisualizer"]
