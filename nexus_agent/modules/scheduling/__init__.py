"""
Scheduling Module - Black Box Interface

Purpose: Fixed-interval background work without overlapping runs
Interface: PeriodicTask.run(), run_once(), stop()
Hidden: Timer arithmetic, single-flight guard, failure containment
"""

from .periodic import PeriodicTask

__all__ = ["PeriodicTask"]
