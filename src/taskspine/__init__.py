"""taskspine - recurring-task scheduler with an overlap guard."""

__version__ = "0.1.0"
