"""Push gateway client using prometheus_client."""
import http.client
import logging

from prometheus_client import CollectorRegistry, pushadd_to_gateway

from pushagent.errors import DeliveryFailure

logger = logging.getLogger(__name__)


class PushGatewayClient:
    """Pushes a full registry snapshot to a Prometheus push gateway."""

    def __init__(self, address: str, timeout: float = 30):
        self.address = address
        self.timeout = timeout

    def push_add(self, registry: CollectorRegistry, job: str):
        """
        Push every metric of registry under job, replacing metrics with the same names.

        Raises:
            DeliveryFailure: if the gateway cannot be reached or rejects the push
        """
        try:
            pushadd_to_gateway(self.address, job=job, registry=registry, timeout=self.timeout)
        except (OSError, http.client.HTTPException) as e:
            # URLError and HTTPError are OSError; malformed responses raise HTTPException
            raise DeliveryFailure(self.address, e) from e
        logger.debug(f"Pushed metrics to {self.address} as job '{job}'")
