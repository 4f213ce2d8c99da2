"""
Launcher entry point.

Starts the embedded server on PORT (default 8080) and, unless TLS is
terminated by the hosting platform, on SSLPORT / SSL_PORT (default 8443)
with the self-signed key store. Runs until the process is terminated.
"""
import sys
import signal
import logging
from dotenv import load_dotenv

from .exceptions import LauncherError
from .launcher_config import LauncherConfig, get_config
from .server import EmbeddedServer, build_connectors
from .webapp import create_webapp_context

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'


def setup_logging(level: str = 'INFO'):
    """Configure root logging once for the process"""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
    )


def print_banner(config: LauncherConfig):
    logger.info("=" * 60)
    logger.info("Web Application Launcher")
    logger.info("=" * 60)
    logger.info(f"HTTP:  http://{config.server_host}:{config.web_port}")
    if config.tls_enabled:
        logger.info(f"HTTPS: https://{config.server_host}:{config.ssl_port}")
    else:
        logger.info("HTTPS: terminated by the hosting platform")
    logger.info("-" * 60)
    for name, value in config.summary().items():
        logger.info(f"  {name:20} {value}")
    logger.info("=" * 60)


def start_webserver(config: LauncherConfig) -> EmbeddedServer:
    """Build the handler and connectors, then start serving"""
    handler = create_webapp_context(config)
    server = EmbeddedServer(handler, build_connectors(config))
    server.start()
    return server


def main():
    """Service entry point"""
    load_dotenv()

    try:
        config = get_config()
    except LauncherError as e:
        setup_logging()
        logger.error(f"Launcher failed to start: {e}")
        sys.exit(1)

    setup_logging(config.log_level)
    print_banner(config)

    for warning in config.validate_configuration():
        logger.warning(f"Configuration warning: {warning}")

    try:
        server = start_webserver(config)
    except (LauncherError, OSError) as e:
        logger.error(f"Launcher failed to start: {e}")
        sys.exit(1)

    def shutdown_handler(signum, frame):
        """Handle graceful shutdown"""
        logger.info(f"Received signal {signum}, shutting down...")
        server.stop()

    signal.signal(signal.SIGTERM, shutdown_handler)

    try:
        server.join()
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
        server.stop()


if __name__ == '__main__':
    main()
