#!/usr/bin/env python3
"""
Upstream relay (smarthost) configuration for the SMTP relay.
"""

import os
import logging
import subprocess

from config import RelayConfig
from postconf import ConfigStore, set_directive
from utils import render_template, remove_file

logger = logging.getLogger('relay_config')

def relay_map_name(config: RelayConfig) -> str:
    """Lookup table reference as Postfix expects it, e.g. lmdb:/etc/postfix/sasl_passwd."""
    return f"{config.relay.map_type}:{config.paths.sasl_passwd}"

def create_sasl_passwd(config: RelayConfig) -> None:
    """
    Compile the relay credentials into a Postfix lookup table.

    The plaintext source file only exists while postmap runs; it is removed
    whether or not compilation succeeds.
    """
    try:
        render_template(
            os.path.join(config.paths.templates_dir, "postfix", "sasl_passwd.j2"),
            config.paths.sasl_passwd,
            {
                "relay_host": config.relay.host,
                "username": config.relay.username,
                "password": config.relay.password,
            },
            0o600,
        )
        subprocess.run(["postmap", relay_map_name(config)], check=True)
    finally:
        remove_file(config.paths.sasl_passwd)

    logger.info(f"Created SASL password map for relay through {config.relay.host}")

def ensure_relay_auth(config: RelayConfig, store: ConfigStore) -> None:
    """Set or clear the upstream relayhost and its authentication."""
    if not config.relay.host:
        set_directive(store, "relayhost", "")
        set_directive(store, "smtp_sasl_auth_enable", "no")
        return

    logger.info(f"Relaying outbound mail through {config.relay.host}")
    set_directive(store, "relayhost", config.relay.host)

    if not config.relay.has_credentials:
        set_directive(store, "smtp_sasl_auth_enable", "no")
        return

    create_sasl_passwd(config)
    set_directive(store, "smtp_sasl_auth_enable", "yes")
    set_directive(store, "smtp_sasl_password_maps", relay_map_name(config))
    set_directive(store, "smtp_sasl_security_options", "noanonymous")
    set_directive(store, "smtp_sasl_tls_security_options", "noanonymous")
