"""
iDRAC Monitor - Chassis temperature monitoring with deduplicated email alerts.

This package polls a Dell iDRAC for its chassis temperature, classifies each
reading against warning and critical thresholds, and notifies operators on
status transitions, prolonged abnormal states and once per hour.

Features:
- Configuration via YAML with environment variable overrides
- Docker secrets support for sensitive credentials
- Structured logging (JSON for production, text for development)
- Append-only temperature log with hourly trend aggregation
"""

__version__ = "1.0.0"
__all__ = ["__version__"]
