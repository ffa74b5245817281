"""Claw Workflows - trigger/action automation engine for the OpenClaw desktop."""

__version__ = "0.1.0"
