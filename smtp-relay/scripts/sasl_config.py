#!/usr/bin/env python3
"""
SMTP authentication for the relay: Postfix SASL directives plus the
Dovecot configuration and passwd-file that back them.
"""

import os
import base64
import logging
import subprocess
from typing import List

from config import RelayConfig, PASSWORD_SCHEME, credential_entries
from postconf import ConfigStore, set_directive
from utils import render_template, write_file

logger = logging.getLogger('sasl_config')

# Postfix runs smtpd relative to its queue directory, Dovecot needs the absolute path
POSTFIX_AUTH_SOCKET = "private/auth"
DOVECOT_AUTH_SOCKET = "/var/spool/postfix/private/auth"

def encode_secret(password: str) -> str:
    return base64.b64encode(password.encode("utf-8")).decode("ascii")

def build_credentials(config: RelayConfig) -> List[str]:
    """Format the configured credentials as Dovecot passwd-file lines, secrets base64 encoded."""
    return [
        f"{username}:{{{PASSWORD_SCHEME}}}{encode_secret(password)}"
        for username, password in credential_entries(config).items()
    ]

def write_dovecot_config(config: RelayConfig) -> None:
    """Render dovecot.conf with the advertised mechanisms and the passwd-file passdb."""
    render_template(
        os.path.join(config.paths.templates_dir, "dovecot", "dovecot.conf.j2"),
        config.paths.dovecot_conf,
        {
            "mechanisms": config.sasl.mechanisms,
            "realm": config.identity.domain,
            "scheme": PASSWORD_SCHEME,
            "users_file": config.paths.dovecot_users,
            "auth_socket": DOVECOT_AUTH_SOCKET,
        },
    )

def write_credential_store(config: RelayConfig) -> int:
    """Rebuild the passwd-file from scratch. Returns the number of entries."""
    entries = build_credentials(config)
    content = "".join(f"{line}\n" for line in entries)
    write_file(config.paths.dovecot_users, content, 0o600)
    logger.info(f"Wrote {len(entries)} SMTP user(s) to {config.paths.dovecot_users}")
    return len(entries)

def ensure_credential_store(config: RelayConfig, store: ConfigStore) -> None:
    """Configure SMTP authentication according to ENABLE_SASL."""
    if not config.sasl.enabled:
        set_directive(store, "smtpd_sasl_auth_enable", "no")
        return

    logger.info("Configuring SMTP authentication via Dovecot")
    set_directive(store, "smtpd_sasl_auth_enable", "yes")
    set_directive(store, "smtpd_sasl_type", "dovecot")
    set_directive(store, "smtpd_sasl_path", POSTFIX_AUTH_SOCKET)
    set_directive(store, "smtpd_sasl_local_domain", config.identity.domain)
    set_directive(store, "smtpd_sasl_security_options", "noanonymous")
    set_directive(store, "smtpd_tls_auth_only", "no")

    write_dovecot_config(config)

    if write_credential_store(config) == 0:
        logger.warning(
            "ENABLE_SASL is true but no usable credentials were supplied "
            "(set SMTP_USERS or SMTP_USERNAME/SMTP_PASSWORD); "
            "only clients in ALLOWED_NETWORKS will be able to relay"
        )

def start_dovecot(config: RelayConfig) -> None:
    """Start the Dovecot auth daemon in the background when SASL is enabled."""
    if not config.sasl.enabled:
        return

    subprocess.run(["dovecot", "-c", config.paths.dovecot_conf], check=True)
    logger.info("Started Dovecot authentication service")
