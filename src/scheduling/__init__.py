"""Course scheduling: recurring session generation."""

from src.scheduling.generator import generate_sessions, parse_start

__all__ = ["generate_sessions", "parse_start"]
