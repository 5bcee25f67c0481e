"""Weather dashboard data layer."""

__version__ = "0.1.0"
