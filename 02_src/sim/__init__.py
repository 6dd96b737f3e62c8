"""Scenario driver for the control surface."""

from .sim import ISim, Sim

__all__ = ["ISim", "Sim"]
