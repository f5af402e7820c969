import logging
from dataclasses import dataclass
from typing import Optional

import requests

logger = logging.getLogger(__name__)


@dataclass
class HealthReport:
    """Outcome of a single HTTP health probe"""
    url: str
    healthy: bool
    status_code: Optional[int] = None
    elapsed_ms: Optional[float] = None
    error: Optional[str] = None

    def to_dict(self):
        return {
            'url': self.url,
            'healthy': self.healthy,
            'status_code': self.status_code,
            'elapsed_ms': self.elapsed_ms,
            'error': self.error,
        }


def check_health(url: str, timeout: float, session=None) -> HealthReport:
    """
    Probes ``url`` with a GET request. Any 2xx answer counts as healthy.

    Connection problems are reported as an unhealthy result, not raised.
    """
    http = session or requests.Session()
    logger.debug(f"Probing {url} (timeout {timeout}s)")
    try:
        response = http.get(url, timeout=timeout)
    except requests.RequestException as e:
        logger.warning(f"Health check request to {url} failed: {e}")
        return HealthReport(url=url, healthy=False, error=str(e))

    elapsed_ms = round(response.elapsed.total_seconds() * 1000, 1)
    healthy = 200 <= response.status_code < 300
    log = logger.info if healthy else logger.warning
    log(f"Health check {url} returned {response.status_code} in {elapsed_ms}ms")
    return HealthReport(url=url, healthy=healthy, status_code=response.status_code, elapsed_ms=elapsed_ms)
