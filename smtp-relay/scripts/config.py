#!/usr/bin/env python3
"""
Configuration management for the SMTP relay.
Handles parsing environment variables into a structured configuration.
"""

import os
import re
import socket
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger('config')

DEFAULT_DOMAIN = "localdomain"
DEFAULT_NETWORKS = "127.0.0.0/8 [::1]/128"
DEFAULT_MESSAGE_SIZE_LIMIT = 10485760
PASSWORD_SCHEME = "PLAIN.b64"

@dataclass
class IdentityConfig:
    """Hostname and mail domain the relay presents."""
    hostname: str = "localhost"
    domain: str = DEFAULT_DOMAIN

@dataclass
class TLSConfig:
    """Configuration for TLS certificates."""
    enabled: bool = True
    cert_file: str = "/etc/postfix/certs/relay-cert.pem"
    key_file: str = "/etc/postfix/certs/relay-key.pem"
    ca_file: str = "/etc/ssl/certs/ca-certificates.crt"
    key_size: int = 4096
    days_valid: int = 3650

@dataclass
class SASLConfig:
    """Configuration for SMTP authentication through Dovecot."""
    enabled: bool = False
    username: str = ""
    password: str = ""
    users: List[Tuple[str, str]] = field(default_factory=list)
    users_given: bool = False
    mechanisms: str = "plain login"

@dataclass
class RelayHostConfig:
    """Configuration for the upstream smarthost."""
    host: str = ""
    username: str = ""
    password: str = ""
    map_type: str = "lmdb"

    @property
    def has_credentials(self) -> bool:
        return bool(self.username and self.password)

@dataclass
class PathsConfig:
    """Filesystem locations of the files the relay manages."""
    postfix_dir: str = "/etc/postfix"
    dovecot_dir: str = "/etc/dovecot"
    templates_dir: str = "/templates"

    @property
    def master_cf(self) -> str:
        return os.path.join(self.postfix_dir, "master.cf")

    @property
    def aliases(self) -> str:
        return os.path.join(self.postfix_dir, "aliases")

    @property
    def sasl_passwd(self) -> str:
        return os.path.join(self.postfix_dir, "sasl_passwd")

    @property
    def dovecot_conf(self) -> str:
        return os.path.join(self.dovecot_dir, "dovecot.conf")

    @property
    def dovecot_users(self) -> str:
        return os.path.join(self.dovecot_dir, "users")

@dataclass
class RelayConfig:
    """Main configuration container."""
    debug: bool = False
    identity: IdentityConfig = field(default_factory=IdentityConfig)
    networks: str = DEFAULT_NETWORKS
    message_size_limit: int = DEFAULT_MESSAGE_SIZE_LIMIT
    tls: TLSConfig = field(default_factory=TLSConfig)
    sasl: SASLConfig = field(default_factory=SASLConfig)
    relay: RelayHostConfig = field(default_factory=RelayHostConfig)
    paths: PathsConfig = field(default_factory=PathsConfig)

def parse_flag(value: Optional[str]) -> bool:
    """Only the literal string "true" (any case) switches a feature on."""
    return str(value or "").strip().lower() == "true"

def parse_int(value: str, default: int) -> int:
    """Parse a string into an integer value."""
    try:
        return int(value)
    except (ValueError, TypeError):
        return default

def normalize_networks(value: str) -> str:
    """Turn a comma and/or space separated CIDR list into the form mynetworks expects."""
    return " ".join(re.split(r'[\s,]+', value.strip())).strip()

def usable_credential(username: str, password: str, source: str) -> bool:
    """
    Whether a username/password pair can be stored in a passwd-file.

    Usernames may not contain colons; neither field may contain line breaks.
    """
    if not username or not password:
        logger.warning(f"Skipping incomplete {source} entry for '{username or '?'}'")
        return False
    if ':' in username or re.search(r'[\r\n]', username + password):
        logger.warning(f"Skipping {source} entry for '{username.splitlines()[0]}': "
                       "colon in username or line break in username/password")
        return False
    return True

def parse_smtp_users(value: str) -> List[Tuple[str, str]]:
    """
    Parse a comma-separated list of user:password pairs.

    Entries without a colon, an empty username or an empty password are skipped.
    Only the first colon separates the fields so passwords may contain colons.
    """
    users = []
    for entry in value.split(','):
        entry = entry.strip()
        if not entry:
            continue
        username, sep, password = entry.partition(':')
        username = username.strip()
        if not sep:
            logger.warning(f"Skipping malformed SMTP_USERS entry for '{username.splitlines()[0]}'")
            continue
        if usable_credential(username, password, 'SMTP_USERS'):
            users.append((username, password))
    return users

def system_hostname() -> str:
    """Best effort fully-qualified name of this host."""
    hostname = socket.getfqdn()
    if not hostname or hostname == "localhost.localdomain":
        hostname = socket.gethostname()
    return hostname

def derive_domain(hostname: str) -> str:
    """Strip the first label of the hostname, e.g. relay.example.com -> example.com."""
    _, _, rest = hostname.partition('.')
    return rest or DEFAULT_DOMAIN

def resolve_identity(env: Mapping[str, str]) -> IdentityConfig:
    """Work out the relay's hostname and mail domain. No FQDN validation is done."""
    hostname = env.get('RELAY_MYHOSTNAME') or system_hostname()
    domain = env.get('RELAY_DOMAIN') or derive_domain(hostname)
    return IdentityConfig(hostname=hostname, domain=domain)

def from_environment(env: Optional[Mapping[str, str]] = None) -> RelayConfig:
    """Load configuration from environment variables."""
    if env is None:
        env = os.environ

    config = RelayConfig(
        debug=parse_flag(env.get('DEBUG', 'false')),
        identity=resolve_identity(env),
        networks=normalize_networks(env.get('ALLOWED_NETWORKS') or DEFAULT_NETWORKS),
        message_size_limit=parse_int(env.get('MESSAGE_SIZE_LIMIT'), DEFAULT_MESSAGE_SIZE_LIMIT),
    )

    defaults = TLSConfig()
    config.tls = TLSConfig(
        enabled=parse_flag(env.get('ENABLE_TLS', 'true')),
        cert_file=env.get('TLS_CERT') or defaults.cert_file,
        key_file=env.get('TLS_KEY') or defaults.key_file,
        ca_file=env.get('TLS_CA') or defaults.ca_file,
    )

    config.sasl = SASLConfig(
        enabled=parse_flag(env.get('ENABLE_SASL', 'false')),
        username=env.get('SMTP_USERNAME', ''),
        password=env.get('SMTP_PASSWORD', ''),
        users=parse_smtp_users(env.get('SMTP_USERS', '')),
        users_given=bool(env.get('SMTP_USERS', '').strip()),
        mechanisms=env.get('AUTH_MECHANISMS') or SASLConfig.mechanisms,
    )

    config.relay = RelayHostConfig(
        host=env.get('RELAYHOST', '').strip(),
        username=env.get('RELAYHOST_USERNAME', ''),
        password=env.get('RELAYHOST_PASSWORD', ''),
        map_type=env.get('POSTFIX_MAP_TYPE') or RelayHostConfig.map_type,
    )

    config.paths = PathsConfig(
        templates_dir=env.get('TEMPLATES_DIR') or PathsConfig.templates_dir,
    )

    return config

def credential_entries(config: RelayConfig) -> Dict[str, str]:
    """
    Credentials that go into the authentication store.

    A non-empty SMTP_USERS takes precedence even when none of its entries are
    usable; the SMTP_USERNAME/SMTP_PASSWORD pair is only used when no list was
    given. A later duplicate username overrides an earlier one.
    """
    if config.sasl.users_given:
        return dict(config.sasl.users)
    username, password = config.sasl.username, config.sasl.password
    if not username and not password:
        return {}
    if usable_credential(username, password, 'SMTP_USERNAME/SMTP_PASSWORD'):
        return {username: password}
    return {}
