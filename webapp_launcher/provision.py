#!/usr/bin/env python3
"""
Provisioning script for the web application launcher

This script helps prepare a deployment:
- Self-signed key store generation
- Web application resource root scaffolding
- Example environment configuration
- Health check of the resources the launcher needs at startup
"""
import os
import sys
import socket
import logging
from pathlib import Path

from dotenv import load_dotenv

from .exceptions import LauncherError
from .keystore import generate_self_signed_keystore, load_ssl_context
from .launcher_config import LauncherConfig, get_config
from .webapp import parse_descriptor

logger = logging.getLogger(__name__)

WEB_XML_TEMPLATE = """<?xml version="1.0" encoding="UTF-8"?>
<web-app xmlns="http://xmlns.jcp.org/xml/ns/javaee" version="3.1">
    <display-name>{display_name}</display-name>

    <!-- Servlets are WSGI callables referenced as module:attribute and
         resolved from WEB-INF/classes and WEB-INF/lib. -->

    <welcome-file-list>
        <welcome-file>index.html</welcome-file>
    </welcome-file-list>
</web-app>
"""

INDEX_TEMPLATE = """<!DOCTYPE html>
<html>
<head><title>{display_name}</title></head>
<body><h1>{display_name}</h1><p>The web application is running.</p></body>
</html>
"""

ENV_EXAMPLE = """# Web Application Launcher Configuration
# Copy this file to .env and configure your settings

# Ports
PORT=8080
SSLPORT=8443
# SSL_PORT is read when SSLPORT is not set
SERVER_HOST=0.0.0.0

# Set to true when the hosting platform terminates TLS in front of the app.
# When unset, BASEDIR ending in /app/target means the platform does it.
TLS_TERMINATED_EXTERNALLY=
BASEDIR=

# Web application
WEBAPP_ROOT=src/main/webapp/

# Key store (create with: webapp-provision --create-keystore)
KEYSTORE_PATH=keystore
KEYSTORE_PASSWORD=123456

LOG_LEVEL=INFO
"""


class LauncherSetup:
    """Handles launcher deployment setup"""

    def __init__(self, config: LauncherConfig, project_root: str = None):
        self.config = config
        self.project_root = Path(project_root or os.getcwd())

    def check_prerequisites(self):
        """Check if system prerequisites are installed"""
        logger.info("Checking system prerequisites...")

        if sys.version_info < (3, 8):
            raise RuntimeError("Python 3.8 or higher is required")

        logger.info(
            f"✓ Python {sys.version_info.major}.{sys.version_info.minor}")
        return True

    def create_keystore(self, hostnames=None, force=False):
        """Generate a self-signed key store at the configured path"""
        logger.info("Creating self-signed key store...")

        try:
            path = generate_self_signed_keystore(
                self.config.keystore_path,
                self.config.keystore_password,
                hostnames=hostnames or ('localhost',),
                overwrite=force,
            )
        except LauncherError as e:
            logger.error(f"❌ {e}")
            return False

        logger.info(f"✓ Key store created at {path}")
        return True

    def create_webapp(self, display_name="Web Application"):
        """Scaffold a resource root with a deployment descriptor"""
        logger.info("Creating web application resource root...")

        root = Path(self.config.webapp_root)
        for directory in (root / 'WEB-INF' / 'classes', root / 'WEB-INF' / 'lib'):
            directory.mkdir(parents=True, exist_ok=True)
            logger.info(f"✓ Created directory: {directory}")

        files = {
            root / 'WEB-INF' / 'web.xml': WEB_XML_TEMPLATE,
            root / 'index.html': INDEX_TEMPLATE,
        }
        for path, template in files.items():
            if path.exists():
                logger.info(f"✓ Keeping existing {path}")
                continue
            path.write_text(template.format(display_name=display_name))
            logger.info(f"✓ Created {path}")

        return True

    def create_config_file(self):
        """Create example configuration file"""
        logger.info("Creating example configuration...")

        config_path = self.project_root / ".env.example"
        config_path.write_text(ENV_EXAMPLE)

        logger.info(f"✓ Example configuration created at {config_path}")
        logger.info("Copy .env.example to .env and configure your settings")
        return True

    def check_webapp(self):
        """Check the resource root and deployment descriptor"""
        logger.info("Checking web application...")

        if not os.path.isdir(self.config.webapp_root):
            logger.error(f"❌ Resource root not found: {self.config.webapp_root}")
            return False

        try:
            descriptor = parse_descriptor(self.config.descriptor_path)
        except LauncherError as e:
            logger.error(f"❌ {e}")
            return False

        logger.info(
            f"✓ Descriptor OK: {len(descriptor.servlets)} servlet(s), "
            f"welcome files {', '.join(descriptor.welcome_files)}")
        return True

    def check_keystore(self):
        """Check the key store opens with the configured password"""
        logger.info("Checking key store...")

        if not self.config.tls_enabled:
            logger.info("✓ TLS terminated by the hosting platform, key store not needed")
            return True

        try:
            load_ssl_context(self.config.keystore_path,
                             self.config.keystore_password)
        except LauncherError as e:
            logger.error(f"❌ {e}")
            return False

        logger.info(f"✓ Key store {self.config.keystore_path} loads")
        return True

    def check_ports(self):
        """Check the configured ports can be bound"""
        logger.info("Checking ports...")

        ports = [('PORT', self.config.web_port)]
        if self.config.tls_enabled:
            ports.append(('SSL_PORT', self.config.ssl_port))

        ok = True
        for name, port in ports:
            with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
                try:
                    sock.bind((self.config.server_host, port))
                    logger.info(f"✓ {name} {port} is free")
                except OSError as e:
                    logger.error(f"❌ {name} {port} unavailable: {e}")
                    ok = False
        return ok

    def run_health_check(self):
        """Run comprehensive health check"""
        logger.info("=" * 60)
        logger.info("LAUNCHER HEALTH CHECK")
        logger.info("=" * 60)

        checks = [
            ("Prerequisites", self.check_prerequisites),
            ("Web application", self.check_webapp),
            ("Key store", self.check_keystore),
            ("Ports", self.check_ports),
        ]

        results = {}
        for name, check_func in checks:
            try:
                results[name] = check_func()
            except RuntimeError as e:
                logger.error(f"❌ {name} check failed: {e}")
                results[name] = False

        logger.info("=" * 60)
        logger.info("HEALTH CHECK SUMMARY")
        logger.info("=" * 60)

        for name, result in results.items():
            status = "✓ PASS" if result else "❌ FAIL"
            logger.info(f"{name:20} {status}")

        return all(results.values())


def main(argv=None):
    """Main provisioning function"""
    import argparse

    load_dotenv()
    logging.basicConfig(level=logging.INFO,
                        format='%(asctime)s - %(levelname)s - %(message)s')

    parser = argparse.ArgumentParser(
        description="Web application launcher provisioning")
    parser.add_argument("--create-keystore", action="store_true",
                        help="Generate a self-signed key store")
    parser.add_argument("--hostname", action="append", dest="hostnames",
                        help="Host name for the certificate (repeatable)")
    parser.add_argument("--force", action="store_true",
                        help="Overwrite an existing key store")
    parser.add_argument("--create-webapp", action="store_true",
                        help="Scaffold the web application resource root")
    parser.add_argument("--create-config", action="store_true",
                        help="Create .env.example")
    parser.add_argument("--health-check", action="store_true",
                        help="Run health check")

    args = parser.parse_args(argv)

    try:
        setup = LauncherSetup(get_config())

        if args.create_keystore:
            success = setup.create_keystore(args.hostnames, force=args.force)
        elif args.create_webapp:
            success = setup.create_webapp()
        elif args.create_config:
            success = setup.create_config_file()
        elif args.health_check:
            success = setup.run_health_check()
        else:
            parser.print_help()
            return 0

    except KeyboardInterrupt:
        logger.info("Setup interrupted by user")
        return 1
    except (LauncherError, OSError) as e:
        logger.error(f"Setup failed: {e}")
        return 1

    return 0 if success else 1


if __name__ == "__main__":
    sys.exit(main())
