#!/usr/bin/env python3
"""
TLS certificate management for the SMTP relay.
"""

import os
import logging
import subprocess

from config import RelayConfig
from postconf import ConfigStore, set_directive

logger = logging.getLogger('tls_config')

def create_self_signed_cert(hostname, cert_path, key_path, key_size=4096, days_valid=3650):
    """Create a self-signed certificate and key for the hostname."""
    for path in (cert_path, key_path):
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)

    subprocess.run([
        "openssl", "req",
        "-new",
        "-nodes",
        "-x509",
        "-days", str(days_valid),
        "-subj", f"/CN={hostname}",
        "-newkey", f"rsa:{key_size}",
        "-keyout", key_path,
        "-out", cert_path
    ], check=True)

    os.chmod(key_path, 0o600)
    logger.info(f"Created self-signed certificate for {hostname}")

def ensure_certificate(config: RelayConfig) -> bool:
    """
    Make sure certificate material exists when TLS is enabled.

    Existing files are left alone, whether an operator supplied them or a
    previous start generated them. Generation failures propagate.

    Returns:
        True if a new certificate was generated
    """
    if not config.tls.enabled:
        logger.debug("TLS is disabled, skipping certificate provisioning")
        return False

    if os.path.isfile(config.tls.cert_file) and os.path.isfile(config.tls.key_file):
        logger.info(f"Using existing TLS certificate {config.tls.cert_file}")
        return False

    logger.info(f"Generating self-signed TLS certificate for {config.identity.hostname}")
    create_self_signed_cert(
        config.identity.hostname,
        config.tls.cert_file,
        config.tls.key_file,
        config.tls.key_size,
        config.tls.days_valid,
    )
    return True

def apply_tls_directives(config: RelayConfig, store: ConfigStore) -> None:
    """Point smtpd at the certificate material, or switch TLS off."""
    if config.tls.enabled:
        set_directive(store, "smtpd_tls_cert_file", config.tls.cert_file)
        set_directive(store, "smtpd_tls_key_file", config.tls.key_file)
        set_directive(store, "smtpd_tls_CAfile", config.tls.ca_file)
        set_directive(store, "smtpd_use_tls", "yes")
        set_directive(store, "smtpd_tls_security_level", "may")
        set_directive(store, "smtp_tls_security_level", "may")
    else:
        set_directive(store, "smtpd_use_tls", "no")
        set_directive(store, "smtpd_tls_security_level", "none")

def print_tls_info(config: RelayConfig):
    """Log subject and expiry of the certificate in use."""
    if not config.tls.enabled or not os.path.isfile(config.tls.cert_file):
        return

    try:
        output = subprocess.check_output([
            "openssl", "x509",
            "-in", config.tls.cert_file,
            "-noout",
            "-subject",
            "-enddate"
        ]).decode('utf-8').strip()
        for line in output.splitlines():
            logger.info(f"Certificate {line}")
    except (subprocess.CalledProcessError, OSError) as e:
        logger.warning(f"Could not read certificate {config.tls.cert_file}: {e}")
