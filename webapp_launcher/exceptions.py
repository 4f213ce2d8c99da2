"""
Startup error taxonomy for the launcher.

Every error is fatal: it is raised where it is detected and handled once in
``launcher.main``, which logs it and exits with a nonzero status.
"""


class LauncherError(Exception):
    """Base class for launcher startup failures"""


class ConfigurationError(LauncherError):
    """Settings could not be resolved from the environment"""


class ResourceError(LauncherError):
    """Resource root, deployment descriptor or servlet class is unusable"""


class KeyStoreError(ResourceError):
    """Key store is missing or cannot be opened with the configured password"""


class BindError(LauncherError):
    """A connector could not bind its port"""

    def __init__(self, connector_name: str, host: str, port: int, error: Exception):
        self.connector_name = connector_name
        self.host = host
        self.port = port
        super().__init__(
            f"Failed to bind {connector_name} connector on {host}:{port}: {error}")
