"""
Pytest configuration file.
Adds the project root to Python path so 'webapp_launcher' can be imported.
"""
import sys
import os
from pathlib import Path

import pytest

# Add project root to Python path
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from webapp_launcher.keystore import generate_self_signed_keystore  # noqa: E402

SAMPLE_WEBAPP = project_root / 'src' / 'main' / 'webapp'
KEYSTORE_PASSWORD = 'test-password'

LAUNCHER_ENV_VARS = [
    'PORT', 'SSLPORT', 'SSL_PORT', 'BASEDIR', 'TLS_TERMINATED_EXTERNALLY',
    'SERVER_HOST', 'WEBAPP_ROOT', 'KEYSTORE_PATH', 'KEYSTORE_PASSWORD',
    'LOG_LEVEL',
]


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Every test starts without launcher environment variables"""
    for name in LAUNCHER_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Application class paths are prepended per test
    monkeypatch.setattr(sys, 'path', list(sys.path))


@pytest.fixture(scope='session')
def keystore_path(tmp_path_factory):
    """Self-signed key store shared by the whole session"""
    path = tmp_path_factory.mktemp('tls') / 'keystore'
    generate_self_signed_keystore(str(path), KEYSTORE_PASSWORD)
    return str(path)


@pytest.fixture
def tls_env(monkeypatch, keystore_path):
    """Environment pointing the launcher at the session key store"""
    monkeypatch.setenv('KEYSTORE_PATH', keystore_path)
    monkeypatch.setenv('KEYSTORE_PASSWORD', KEYSTORE_PASSWORD)
    return keystore_path


@pytest.fixture
def sample_webapp():
    return str(SAMPLE_WEBAPP)
