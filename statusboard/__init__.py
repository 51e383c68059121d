"""
StatusBoard — Operations dashboard aggregation engine.

An async, configuration-driven engine that polls ticketing, monitoring,
change-management and vendor status sources and normalizes them into a
small set of canonical records for an operations dashboard.
"""

__version__ = "1.0.0"
