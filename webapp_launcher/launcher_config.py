"""
Launcher configuration resolved from the process environment.

Ports come from PORT / SSLPORT / SSL_PORT, TLS mode from an explicit
TLS_TERMINATED_EXTERNALLY switch or, when that is unset, from the legacy
base-directory heuristic for the managed hosting platform.
"""
import os
import logging
from typing import List, Mapping, Optional
from pydantic import Field, PrivateAttr, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_WEB_PORT = 8080
DEFAULT_SSL_PORT = 8443
DEFAULT_WEBAPP_ROOT = 'src/main/webapp/'
DEFAULT_KEYSTORE_PATH = 'keystore'
DEFAULT_KEYSTORE_PASSWORD = '123456'

# Environment variable names
ENV_PORT = 'PORT'
ENV_SSLPORT = 'SSLPORT'
ENV_SSL_PORT = 'SSL_PORT'

# Build layout of the managed platform's slug
PLATFORM_BASEDIR_SUFFIX = '/app/target'

MAX_PORT = 65535


def get_environment_variable(name: str, default: Optional[int],
                             environ: Optional[Mapping[str, str]] = None) -> Optional[int]:
    """
    Get a numeric environment variable.

    Returns ``default`` when the variable is unset or blank. Values that are
    not a base-10 integer in the valid port range are logged and replaced by
    ``default`` as well.
    """
    if environ is None:
        environ = os.environ

    value = environ.get(name)
    if value is None or not value.strip():
        return default

    try:
        parsed = int(value.strip(), 10)
    except ValueError:
        logger.warning(
            f"Ignoring non-numeric {name}={value!r}, using default {default}")
        return default

    if not 0 <= parsed <= MAX_PORT:
        logger.warning(
            f"Ignoring out-of-range {name}={parsed}, using default {default}")
        return default

    return parsed


def get_web_port(environ: Optional[Mapping[str, str]] = None) -> int:
    """HTTP port from PORT, 8080 when unset"""
    return get_environment_variable(ENV_PORT, DEFAULT_WEB_PORT, environ)


def get_ssl_port(environ: Optional[Mapping[str, str]] = None) -> int:
    """HTTPS port from SSLPORT, then SSL_PORT, then 8443"""
    port = get_environment_variable(ENV_SSLPORT, None, environ)
    if port is None:
        return get_environment_variable(ENV_SSL_PORT, DEFAULT_SSL_PORT, environ)
    return port


def is_running_on_managed_platform(basedir: Optional[str]) -> bool:
    """Whether the base directory matches the managed platform's build layout"""
    return bool(basedir) and basedir.endswith(PLATFORM_BASEDIR_SUFFIX)


class LauncherConfig(BaseSettings):
    """Launcher configuration"""

    model_config = SettingsConfigDict(
        case_sensitive=False,
        env_ignore_empty=True,
        extra='ignore',
    )

    # Network
    server_host: str = Field('0.0.0.0')

    # Web application
    webapp_root: str = Field(DEFAULT_WEBAPP_ROOT)

    # TLS key store (PEM certificate chain + encrypted private key)
    keystore_path: str = Field(DEFAULT_KEYSTORE_PATH)
    keystore_password: str = Field(DEFAULT_KEYSTORE_PASSWORD)

    # Platform detection. TLS_TERMINATED_EXTERNALLY wins when set; BASEDIR
    # feeds the legacy path heuristic otherwise.
    tls_terminated_externally: Optional[bool] = Field(None)
    basedir: Optional[str] = Field(None)

    # Logging
    log_level: str = Field('INFO')

    _web_port: int = PrivateAttr(DEFAULT_WEB_PORT)
    _ssl_port: int = PrivateAttr(DEFAULT_SSL_PORT)

    def model_post_init(self, context) -> None:
        self._web_port = get_web_port()
        self._ssl_port = get_ssl_port()

    @property
    def web_port(self) -> int:
        return self._web_port

    @property
    def ssl_port(self) -> int:
        return self._ssl_port

    @property
    def descriptor_path(self) -> str:
        return os.path.join(self.webapp_root, 'WEB-INF', 'web.xml')

    @property
    def running_on_managed_platform(self) -> bool:
        return is_running_on_managed_platform(self.basedir)

    @property
    def tls_enabled(self) -> bool:
        """Off-platform we provide TLS ourselves; the platform does it for us"""
        if self.tls_terminated_externally is not None:
            return not self.tls_terminated_externally
        return not self.running_on_managed_platform

    def validate_configuration(self) -> List[str]:
        """Validate configuration and return warnings"""
        warnings = []

        if not os.path.isdir(self.webapp_root):
            warnings.append(
                f"Resource root '{self.webapp_root}' does not exist")
        elif not os.path.isfile(self.descriptor_path):
            warnings.append(
                f"Deployment descriptor '{self.descriptor_path}' not found")

        if self.tls_enabled:
            if not os.path.isfile(self.keystore_path):
                warnings.append(
                    f"TLS enabled but key store '{self.keystore_path}' not found - "
                    "create one with: webapp-provision --create-keystore")
            if self.web_port == self.ssl_port and self.web_port != 0:
                warnings.append(
                    f"HTTP and HTTPS both configured on port {self.web_port}")

        if logging.getLevelName(self.log_level.upper()) == f"Level {self.log_level.upper()}":
            warnings.append(f"Unknown LOG_LEVEL '{self.log_level}'")

        return warnings

    def summary(self) -> dict:
        """Resolved values for the startup banner (password masked)"""
        return {
            'SERVER_HOST': self.server_host,
            'PORT': self.web_port,
            'SSL_PORT': self.ssl_port if self.tls_enabled else 'disabled',
            'TLS_ENABLED': self.tls_enabled,
            'MANAGED_PLATFORM': self.running_on_managed_platform,
            'WEBAPP_ROOT': self.webapp_root,
            'KEYSTORE_PATH': self.keystore_path,
            'KEYSTORE_PASSWORD': '*' * len(self.keystore_password),
        }


def get_config() -> LauncherConfig:
    """Build the launcher configuration from the current environment"""
    try:
        return LauncherConfig()
    except ValidationError as e:
        raise ConfigurationError(f"Invalid launcher configuration: {e}") from e
