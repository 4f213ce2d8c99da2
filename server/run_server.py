#!/usr/bin/env python3
"""
Container-friendly launcher for the embedded web server.

Reads PORT (default 8080) and SSLPORT / SSL_PORT (default 8443) from the
environment. Takes no arguments; runs until the process is terminated.
"""
import os
import sys

# Ensure project root is on sys.path
BASE_DIR = os.path.dirname(os.path.abspath(__file__))
PARENT_DIR = os.path.dirname(BASE_DIR)  # Go up to project root
if PARENT_DIR not in sys.path:
    sys.path.insert(0, PARENT_DIR)

from webapp_launcher.launcher import main  # noqa: E402


if __name__ == '__main__':
    main()
