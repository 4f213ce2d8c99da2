"""
Embedded WSGI server with one or more connectors.

Each connector is a werkzeug threaded server bound to its own port and
running its accept loop on a dedicated thread. The calling thread blocks in
join() for the life of the server.
"""
import ssl
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

from werkzeug.serving import BaseWSGIServer, make_server

from .exceptions import BindError, LauncherError
from .keystore import load_ssl_context

logger = logging.getLogger(__name__)


class ServerState(Enum):
    """Server lifecycle"""
    CONFIGURING = "configuring"
    SERVING = "serving"
    STOPPED = "stopped"


@dataclass
class Connector:
    """Network listener, optionally terminating TLS"""
    name: str
    port: int
    host: str = '0.0.0.0'
    ssl_context: Optional[ssl.SSLContext] = None

    @property
    def scheme(self) -> str:
        return 'https' if self.ssl_context is not None else 'http'


def build_connectors(config) -> List[Connector]:
    """
    Connectors for the configured TLS mode

    With TLS disabled only the plain connector is created and the key store
    is never touched. With TLS enabled the key store is loaded here, so a
    missing key store fails before any socket is bound.
    """
    connectors = [Connector('http', config.web_port, config.server_host)]

    if config.tls_enabled:
        ssl_context = load_ssl_context(
            config.keystore_path, config.keystore_password)
        connectors.append(
            Connector('https', config.ssl_port, config.server_host, ssl_context))

    return connectors


class EmbeddedServer:
    """WSGI handler served on a set of connectors"""

    def __init__(self, handler: Callable, connectors: List[Connector]):
        if not connectors:
            raise LauncherError("Server needs at least one connector")
        self.handler = handler
        self.connectors = connectors
        self.state = ServerState.CONFIGURING
        self._servers: List[BaseWSGIServer] = []
        self._threads: List[threading.Thread] = []
        self._lock = threading.Lock()

    @property
    def bound_ports(self) -> Dict[str, int]:
        """Actual port per connector name once started"""
        return {connector.name: server.server_port
                for connector, server in zip(self.connectors, self._servers)}

    def _bind(self, connector: Connector) -> BaseWSGIServer:
        try:
            return make_server(
                connector.host,
                connector.port,
                self.handler,
                threaded=True,
                ssl_context=connector.ssl_context,
            )
        except (OSError, SystemExit) as e:
            # werkzeug exits the process itself when a port is unavailable
            raise BindError(connector.name, connector.host, connector.port, e) from e

    def start(self):
        """Bind every connector and start accepting connections"""
        with self._lock:
            if self.state is not ServerState.CONFIGURING:
                raise LauncherError(
                    f"Server cannot start from state {self.state.value}")

            try:
                for connector in self.connectors:
                    self._servers.append(self._bind(connector))
            except BindError:
                for server in self._servers:
                    server.server_close()
                self._servers = []
                raise

            for connector, server in zip(self.connectors, self._servers):
                thread = threading.Thread(
                    target=server.serve_forever,
                    name=f"connector-{connector.name}",
                    daemon=True,
                )
                thread.start()
                self._threads.append(thread)
                logger.info(
                    f"Started {connector.name} connector on "
                    f"{connector.scheme}://{connector.host}:{server.server_port}")

            self.state = ServerState.SERVING

    def join(self, timeout: Optional[float] = None):
        """Block until every connector has stopped serving"""
        for thread in self._threads:
            thread.join(timeout)

    def stop(self):
        """Stop accepting connections and close the listening sockets"""
        with self._lock:
            if self.state is not ServerState.SERVING:
                return
            for server in self._servers:
                server.shutdown()
                server.server_close()
            self.state = ServerState.STOPPED
            logger.info("Server stopped")
