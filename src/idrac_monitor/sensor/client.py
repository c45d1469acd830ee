"""Redfish client that reads the chassis temperature from a Dell iDRAC.

Example usage:
    from idrac_monitor.config import MonitorSettings
    from idrac_monitor.sensor import SensorClient

    settings = MonitorSettings(host="10.0.0.5", username="root", password="secret")

    with SensorClient(settings) as client:
        reading = client.fetch_reading()
        print(f"{reading.value:.1f}°C from {reading.sensor_name}")
"""

from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Tuple

import httpx
import structlog

from idrac_monitor import __version__
from idrac_monitor.config import MonitorSettings
from idrac_monitor.exceptions import (
    FetchError,
    SensorAuthenticationError,
    SensorConnectionError,
)
from idrac_monitor.models.reading import SensorReading

from .retry import create_retry_decorator

logger = structlog.get_logger(__name__)

THERMAL_PATH = "/redfish/v1/Chassis/System.Embedded.1/Thermal"


def extract_temperature(
    payload: Any,
    offset: float = 0.0,
    min_valid: float = 0.0,
    max_valid: float = 100.0,
    sensor_name: Optional[str] = None,
) -> Tuple[float, Optional[str]]:
    """Pick the temperature from a Redfish Thermal resource.

    Sensors are scanned in order; the first one with a numeric
    ``ReadingCelsius`` (and a matching ``Name`` when ``sensor_name`` is set)
    whose corrected value lies within ``[min_valid, max_valid]`` wins.

    Args:
        payload: Decoded JSON body of the Thermal resource
        offset: Correction added to the raw reading
        min_valid: Lowest plausible corrected value
        max_valid: Highest plausible corrected value
        sensor_name: Only consider the sensor with this Name

    Returns:
        Tuple of (corrected value, sensor name)

    Raises:
        FetchError: If no plausible temperature is present
    """
    if not isinstance(payload, dict):
        raise FetchError("Malformed Thermal payload: expected a JSON object")

    sensors = payload.get("Temperatures")
    if not isinstance(sensors, list):
        raise FetchError("Malformed Thermal payload: no Temperatures array")

    for sensor in sensors:
        if not isinstance(sensor, dict):
            continue
        name = sensor.get("Name")
        if sensor_name is not None and name != sensor_name:
            continue
        raw = sensor.get("ReadingCelsius")
        if isinstance(raw, bool) or not isinstance(raw, (int, float)):
            continue
        value = float(raw) + offset
        if min_valid <= value <= max_valid:
            return value, name

    wanted = f" named '{sensor_name}'" if sensor_name else ""
    raise FetchError(
        f"No plausible temperature sensor{wanted} in Thermal payload",
        hint=f"Accepted range is {min_valid}..{max_valid}°C after an offset of {offset}.",
    )


class SensorClient:
    """Fetches temperature readings from the iDRAC Redfish API.

    Attributes:
        settings: MonitorSettings configuration object.
        base_url: Base URL of the iDRAC.
    """

    def __init__(
        self,
        settings: MonitorSettings,
        http_client: Optional[httpx.Client] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ) -> None:
        """Initialize the sensor client.

        Args:
            settings: Configuration settings for the iDRAC connection.
            http_client: Pre-built httpx client (tests); created lazily if None.
            clock: Source of reading timestamps.
        """
        self.settings = settings
        self.base_url = settings.base_url
        self._client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._retry = create_retry_decorator(max_retries=settings.max_retries)

    def __enter__(self) -> "SensorClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _ensure_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(
                verify=self.settings.verify_ssl,
                timeout=self.settings.connect_timeout,
                auth=(self.settings.username, self.settings.password),
                headers={
                    "Accept": "application/json",
                    "User-Agent": f"iDRAC-Monitor/{__version__}",
                },
            )
        return self._client

    def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client is not None and self._owns_client:
            self._client.close()
            self._client = None

    def fetch_reading(self) -> SensorReading:
        """Fetch and correct the current chassis temperature.

        Returns:
            SensorReading stamped with the fetch time.

        Raises:
            SensorConnectionError: Network failure or timeout after retries.
            SensorAuthenticationError: Credentials rejected.
            FetchError: Unexpected HTTP status or no plausible reading.
        """
        payload = self.get_thermal()
        value, name = extract_temperature(
            payload,
            offset=self.settings.reading_offset,
            min_valid=self.settings.min_valid_reading,
            max_valid=self.settings.max_valid_reading,
            sensor_name=self.settings.sensor_name,
        )
        reading = SensorReading(value=value, timestamp=self._clock(), sensor_name=name)
        logger.debug("reading_fetched", value=value, sensor=name)
        return reading

    def get_thermal(self) -> Dict[str, Any]:
        """GET the Thermal resource and decode it.

        Raises:
            FetchError: See fetch_reading().
        """
        url = f"{self.base_url}{THERMAL_PATH}"
        try:
            response = self._retry(self._ensure_client().get)(url)
        except httpx.TimeoutException as e:
            logger.warning("sensor_timeout", url=url, error=str(e))
            raise SensorConnectionError(
                f"Timed out after {self.settings.connect_timeout}s reading {url}"
            ) from e
        except httpx.RequestError as e:
            logger.warning("sensor_unreachable", url=url, error=str(e))
            raise SensorConnectionError(f"Cannot connect to iDRAC at {self.base_url}: {e}") from e

        if response.status_code in (401, 403):
            raise SensorAuthenticationError(
                f"iDRAC rejected credentials (HTTP {response.status_code})"
            )
        if response.status_code != 200:
            raise FetchError(f"Unexpected HTTP {response.status_code} from {url}")

        try:
            return response.json()
        except ValueError as e:
            raise FetchError(f"Invalid JSON from {url}: {e}") from e
