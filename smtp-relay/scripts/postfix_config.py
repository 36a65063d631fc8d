#!/usr/bin/env python3
"""
Postfix configuration management for the SMTP relay.
"""

import os
import re
import logging
import subprocess
from pathlib import Path
from typing import List, Optional

from config import RelayConfig
from postconf import ConfigStore, set_directive
from tls_config import apply_tls_directives

logger = logging.getLogger('postfix_config')

DEFAULT_DAEMON_COMMAND = ["postfix", "start-fg"]

# smtp inet n - y - - smtpd  ->  chroot column (5th) forced to n
SMTPD_CHROOT_RE = re.compile(
    r'^(smtp\s+inet\s+\S+\s+\S+\s+)[yn-](\s+\S+\s+\S+\s+smtpd\b)',
    re.MULTILINE
)

def disable_smtpd_chroot(config: RelayConfig) -> bool:
    """Run the public smtpd service outside the chroot."""
    master_cf = config.paths.master_cf
    if not os.path.exists(master_cf):
        logger.warning(f"{master_cf} not found, leaving smtpd chroot setting alone")
        return False

    with open(master_cf, 'r') as f:
        content = f.read()

    updated = SMTPD_CHROOT_RE.sub(r'\1n\2', content)
    if updated == content:
        return False

    with open(master_cf, 'w') as f:
        f.write(updated)
    logger.info("Disabled chroot for smtpd in master.cf")
    return True

def ensure_aliases(config: RelayConfig) -> None:
    """Make sure the aliases file and its compiled map exist."""
    Path(config.paths.aliases).touch()
    subprocess.run(["newaliases"], check=True)

def apply_base_configuration(config: RelayConfig, store: ConfigStore) -> None:
    """Apply the directives every relay needs, TLS included."""
    hostname = config.identity.hostname
    domain = config.identity.domain

    set_directive(store, "myhostname", hostname)
    set_directive(store, "mydomain", domain)
    set_directive(store, "myorigin", domain)
    set_directive(store, "mydestination", "localhost.localdomain, localhost")
    set_directive(store, "mynetworks", config.networks)
    set_directive(store, "inet_interfaces", "all")
    set_directive(store, "inet_protocols", "all")
    set_directive(store, "message_size_limit", config.message_size_limit)
    set_directive(
        store,
        "smtpd_recipient_restrictions",
        "permit_mynetworks, permit_sasl_authenticated, reject_unauth_destination",
    )
    set_directive(store, "smtpd_helo_required", "yes")
    set_directive(store, "smtpd_banner", f"{hostname} ESMTP")
    set_directive(store, "maillog_file", "/dev/stdout")

    apply_tls_directives(config, store)

def check_postfix(config: RelayConfig) -> None:
    """Run `postfix check`; a non-zero exit aborts startup."""
    subprocess.run(["postfix", "-c", config.paths.postfix_dir, "check"], check=True)
    logger.info("Postfix configuration check passed")

def exec_daemon(command: Optional[List[str]] = None) -> None:
    """Replace the current process with the mail daemon. Does not return."""
    argv = list(command or DEFAULT_DAEMON_COMMAND)
    logger.info(f"Starting {' '.join(argv)}")
    for handler in logging.getLogger().handlers:
        handler.flush()
    os.execvp(argv[0], argv)
