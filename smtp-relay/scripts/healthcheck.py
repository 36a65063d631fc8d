#!/usr/bin/env python3
"""
Health check for the SMTP relay container.
Checks that Postfix accepts connections and that Dovecot is up when SMTP
authentication is enabled.
"""

import os
import sys
import logging
import subprocess
import socket

from config import parse_flag

logger = logging.getLogger('healthcheck')

SMTP_PORT = 25

def check_process_running(process_name):
    """Check if a process is running."""
    try:
        output = subprocess.check_output(["pgrep", "-x", process_name], universal_newlines=True)
        return len(output.strip()) > 0
    except (subprocess.CalledProcessError, OSError):
        return False

def check_port_listening(port, host='127.0.0.1'):
    """Check if a port is listening."""
    try:
        with socket.create_connection((host, port), timeout=1):
            return True
    except OSError:
        return False

def check_postfix():
    """Check if the Postfix master process is running."""
    if not check_process_running("master"):
        logger.error("Postfix master process is not running")
        return False
    return True

def check_smtp_port():
    """Check if the SMTP port accepts connections."""
    if not check_port_listening(SMTP_PORT):
        logger.error(f"Port {SMTP_PORT} is not listening")
        return False
    return True

def check_dovecot():
    """Check if Dovecot is running."""
    if not check_process_running("dovecot"):
        logger.error("Dovecot process is not running")
        return False
    return True

def run_healthcheck(env=None):
    """Run all health checks."""
    if env is None:
        env = os.environ

    checks = [
        ("Postfix", check_postfix),
        ("SMTP port", check_smtp_port),
    ]
    if parse_flag(env.get('ENABLE_SASL', 'false')):
        checks.append(("Dovecot", check_dovecot))

    all_healthy = True
    for name, check_func in checks:
        try:
            if check_func():
                logger.debug(f"{name} check passed")
            else:
                all_healthy = False
        except Exception as e:
            logger.error(f"Error during {name} check: {e}")
            all_healthy = False

    return all_healthy

if __name__ == "__main__":
    logging.basicConfig(
        level=logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    sys.exit(0 if run_healthcheck() else 1)
