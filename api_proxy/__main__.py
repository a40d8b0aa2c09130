import logging
import sys

import uvicorn

from api_proxy.config import ConfigurationError, load_config
from api_proxy.server import create_app
from api_proxy.vars import LOG_LEVEL

logger = logging.getLogger("uvicorn.error")


def main() -> int:
    try:
        config = load_config()
    except ConfigurationError as e:
        logging.basicConfig(level=logging.ERROR)
        logger.error(f"[Proxy] Cannot start: {e}")
        return 1

    server_config = uvicorn.Config(
        create_app(config),
        host=config.host,
        port=config.port,
        log_level=LOG_LEVEL,
        # Relayed responses carry the upstream's headers only
        server_header=False,
        date_header=False,
    )
    server = uvicorn.Server(server_config)
    logger.info(f"Proxy listening on {config.port} → {config.target}")
    server.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
