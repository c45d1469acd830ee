"""File-based health check for container monitoring.

The monitor rewrites a small JSON file after every poll. A container
HEALTHCHECK can read it to decide whether the last poll reached the iDRAC.

Docker HEALTHCHECK example:
    HEALTHCHECK --interval=60s --timeout=3s --retries=3 \\
        CMD python -c "import json; h=json.loads(open('/tmp/idrac-monitor-health').read()); exit(0 if h['status']=='healthy' else 1)"
"""

import json
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional

import structlog

log = structlog.get_logger()

HEALTH_FILE = Path("/tmp/idrac-monitor-health")


class HealthStatus(Enum):
    """Health status values written to the health file.

    Values:
        STARTING: Service is initializing
        HEALTHY: Last poll read a temperature
        UNHEALTHY: Last poll failed to read a temperature
    """

    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


def update_health_status(
    status: HealthStatus,
    details: Optional[Dict[str, Any]] = None,
) -> None:
    """Write health status to the health file.

    A failure to write is logged and otherwise ignored; health reporting
    never interrupts a poll.

    Args:
        status: Current health status of the service.
        details: Optional dictionary with additional status information.
    """
    health_data = {
        "status": status.value,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "details": details or {},
    }
    try:
        HEALTH_FILE.write_text(json.dumps(health_data, default=str))
    except OSError as e:
        log.warning("health_file_write_failed", path=str(HEALTH_FILE), error=str(e))


def clear_health_status() -> None:
    """Remove the health file on shutdown."""
    HEALTH_FILE.unlink(missing_ok=True)
