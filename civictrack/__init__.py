"""
CivicTrack - Geofenced civic issue reporting and moderation engine.
"""

__version__ = "0.1.0"
