"""
TLS key store handling.

The key store is one PEM file: the certificate chain followed by the private
key, the key encrypted with the key store password.
"""
import os
import ssl
import ipaddress
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID

from .exceptions import KeyStoreError

logger = logging.getLogger(__name__)


def load_ssl_context(path: str, password: str) -> ssl.SSLContext:
    """
    Load the key store into a server-side SSL context

    Args:
        path: Key store file
        password: Password the private key is encrypted with

    Returns:
        SSLContext ready to wrap listening sockets

    Raises:
        KeyStoreError: file is missing, unreadable or the password is wrong
    """
    if not os.path.isfile(path):
        raise KeyStoreError(f"Key store not found: {path}")

    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    try:
        context.load_cert_chain(certfile=path, password=password)
    except (ssl.SSLError, OSError) as e:
        raise KeyStoreError(f"Failed to load key store {path}: {e}") from e

    logger.info(f"Loaded key store {path}")
    return context


def generate_self_signed_keystore(path: str, password: str,
                                  hostnames: Iterable[str] = ('localhost',),
                                  days: int = 365,
                                  overwrite: bool = False) -> str:
    """
    Write a self-signed certificate and encrypted key to ``path``

    Returns the absolute path of the key store.
    """
    if os.path.exists(path) and not overwrite:
        raise KeyStoreError(
            f"Key store {path} already exists (use overwrite to replace it)")

    hostnames = [h for h in hostnames if h] or ['localhost']

    key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, hostnames[0]),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, 'webapp-launcher self-signed'),
    ])

    sans = []
    for host in hostnames:
        try:
            sans.append(x509.IPAddress(ipaddress.ip_address(host)))
        except ValueError:
            sans.append(x509.DNSName(host))
    if not any(isinstance(s, x509.IPAddress) for s in sans):
        sans.append(x509.IPAddress(ipaddress.ip_address('127.0.0.1')))

    now = datetime.now(timezone.utc)
    cert = (x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - timedelta(minutes=5))
            .not_valid_after(now + timedelta(days=days))
            .add_extension(x509.SubjectAlternativeName(sans), critical=False)
            .add_extension(x509.BasicConstraints(ca=False, path_length=None), critical=True)
            .sign(key, hashes.SHA256()))

    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)

    with open(path, 'wb') as f:
        f.write(cert.public_bytes(serialization.Encoding.PEM))
        f.write(key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.BestAvailableEncryption(
                password.encode('utf-8')),
        ))
    os.chmod(path, 0o600)

    logger.info(
        f"Generated self-signed key store {path} for {', '.join(hostnames)} (valid {days} days)")
    return os.path.abspath(path)
