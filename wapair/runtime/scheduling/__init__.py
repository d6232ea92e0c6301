"""Scheduling subsystem for wapair."""

from wapair.runtime.scheduling.sweep import SessionSweeper

__all__ = ["SessionSweeper"]
