"""WorkTrack core - timer management and KPI analytics."""

__version__ = "1.0.0"
