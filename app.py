import logging
import sys

from shipping_dashboard.api import create_app
from shipping_dashboard.config import get_dashboard_settings, get_drx_settings
from shipping_dashboard.logging_config import configure_logging
from shipping_dashboard.services.connectivity import ConnectivityError, ensure_online_connectivity
from shipping_dashboard.services.drx_client import DRXClient, DRXError
from shipping_dashboard.services.orchestrator import ShippingDataService

logger = logging.getLogger("shipping_dashboard.app")


def main() -> None:
    configure_logging()
    try:
        settings = get_dashboard_settings()
        configure_logging(settings.log_level)
        drx_settings = get_drx_settings()
        ensure_online_connectivity(drx_settings.base_url, api_key=drx_settings.api_key)
        client = DRXClient(drx_settings, bucket_timezone=settings.bucket_timezone)
    except (RuntimeError, DRXError, ValueError, ConnectivityError) as exc:
        logger.error("Invalid configuration: %s", exc)
        sys.exit(1)

    service = ShippingDataService(client, settings)
    service.prewarm()
    app = create_app(service, settings)
    logger.info("Shipping dashboard API running at http://localhost:%d", settings.port)
    app.run(host="0.0.0.0", port=settings.port, threaded=True)


if __name__ == "__main__":
    main()
