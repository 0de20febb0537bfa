"""Crane game domain services: round engine, timers and leaderboard.

This package contains pure(ish) game logic that should be imported by
HTTP routes and socket handlers, keeping transport concerns separated
from core game mechanics.
"""
