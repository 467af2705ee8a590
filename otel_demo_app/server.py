import logging
import sys

from .app import create_app
from .config import ConfigError, Settings
from .simulators import ConnectionSimulator
from .telemetry import Telemetry

logger = logging.getLogger(__name__)


def main(environ=None):
    try:
        settings = Settings.from_env(environ)
    except ConfigError as exc:
        logging.basicConfig(level=logging.INFO)
        logger.error("invalid configuration: %s", exc)
        return 1

    logging.basicConfig(level=settings.log_level)

    telemetry = Telemetry.setup(settings)
    app = create_app(settings.service_name)
    demo = app.extensions["demo"]

    demo.fan_feed.start()
    simulator = ConnectionSimulator(demo.connections).start()
    try:
        app.run(host=settings.host, port=settings.port)
    finally:
        simulator.stop(timeout=1)
        telemetry.shutdown()
    return 0


if __name__ == "__main__":
    sys.exit(main())
