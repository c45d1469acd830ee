"""iDRAC sensor collaborator."""

from idrac_monitor.sensor.client import THERMAL_PATH, SensorClient, extract_temperature

__all__ = ["SensorClient", "THERMAL_PATH", "extract_temperature"]
