"""
MOOD Control - simulated mood control for interactive art installations.

This package runs a simulated sensor feed through a rule-based mood selector
and exposes the resulting state over HTTP and Server-Sent Events.
"""

__version__ = "0.1.0"
