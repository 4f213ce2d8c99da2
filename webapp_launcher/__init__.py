"""
Web Application Launcher Package

Embedded WSGI server bootstrap that mounts a web application resource root
over HTTP and, off-platform, over HTTPS with a self-signed key store.
"""

__version__ = "1.0.0"
__author__ = "Platform Team"
