#!/usr/bin/env python3
"""
Entrypoint script for the SMTP relay container.
Reconciles Postfix and Dovecot configuration with the environment, then
hands the process over to Postfix running in the foreground.
"""

import sys
import logging
import argparse
from tabulate import tabulate

from config import RelayConfig, credential_entries, from_environment
from postconf import ConfigStore, PostconfStore, RecordingStore
from postfix_config import (
    apply_base_configuration,
    check_postfix,
    disable_smtpd_chroot,
    ensure_aliases,
    exec_daemon,
)
from tls_config import ensure_certificate, print_tls_info
from sasl_config import ensure_credential_store, start_dovecot
from relay_config import ensure_relay_auth
from dns_check import check_dns_records, show_dns_table

logger = logging.getLogger('entrypoint')

def setup_logging(debug: bool = False) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler()
        ]
    )

def reconcile(config: RelayConfig, store: ConfigStore) -> None:
    """Bring Postfix and Dovecot configuration in line with the environment."""
    ensure_certificate(config)
    disable_smtpd_chroot(config)
    ensure_aliases(config)
    apply_base_configuration(config, store)
    ensure_credential_store(config, store)
    ensure_relay_auth(config, store)

def initialize(config: RelayConfig, store: ConfigStore = None, start_services: bool = True) -> bool:
    """Reconcile configuration and verify it. Everything short of starting Postfix."""
    if store is None:
        store = PostconfStore(config.paths.postfix_dir)
    recorder = RecordingStore(store)

    try:
        reconcile(config, recorder)
        check_postfix(config)
        if start_services:
            start_dovecot(config)
    except Exception as e:
        logger.error(f"Initialization failed: {e}")
        return False

    if recorder.changed:
        logger.info(f"Updated {len(recorder.changed)} directive(s): {', '.join(recorder.changed)}")
    else:
        logger.info("Postfix configuration already up to date")
    print_tls_info(config)
    return True

def show_config_table(config: RelayConfig) -> str:
    """Render the effective configuration as a table. Secrets are never shown."""
    rows = [
        ["Hostname", config.identity.hostname],
        ["Domain", config.identity.domain],
        ["Allowed Networks", config.networks],
        ["Message Size Limit", f"{config.message_size_limit} bytes"],
        ["TLS", "Enabled" if config.tls.enabled else "Disabled"],
    ]
    if config.tls.enabled:
        rows.extend([
            ["TLS Certificate", config.tls.cert_file],
            ["TLS Key", config.tls.key_file],
            ["TLS CA", config.tls.ca_file],
        ])
    rows.append(["SMTP Auth", "Enabled" if config.sasl.enabled else "Disabled"])
    if config.sasl.enabled:
        users = sorted(credential_entries(config))
        rows.extend([
            ["Mechanisms", config.sasl.mechanisms],
            ["Users", ", ".join(users) if users else "None"],
        ])
    rows.append(["Relay Host", config.relay.host or "None (direct delivery)"])
    if config.relay.host:
        rows.append(["Relay Authentication", "Yes" if config.relay.has_credentials else "No"])
    return tabulate(rows, tablefmt="plain")

def load_config() -> RelayConfig:
    try:
        config = from_environment()
    except Exception:
        setup_logging()
        raise
    setup_logging(config.debug)
    return config

def run_initialize() -> int:
    """Reconcile and verify without starting Postfix."""
    try:
        config = load_config()
    except Exception as e:
        logger.error(f"Error: {e}")
        return 1
    return 0 if initialize(config, start_services=False) else 1

def run(daemon_command=None) -> int:
    """Reconcile, then exec Postfix. Only returns on failure."""
    try:
        config = load_config()
    except Exception as e:
        logger.error(f"Error: {e}")
        return 1

    if not initialize(config):
        logger.error("Initialization failed, not starting Postfix")
        return 1

    try:
        exec_daemon(daemon_command)
    except OSError as e:
        logger.error(f"Could not start mail daemon: {e}")
    return 1

def show_config(check_dns: bool = False) -> int:
    """Show the current configuration in a tabular format."""
    try:
        config = from_environment()
        print(show_config_table(config))
        if check_dns:
            print()
            print(show_dns_table(check_dns_records(config)))
        return 0
    except Exception as e:
        logger.error(f"Error showing configuration: {e}")
        return 1

def main(argv=None):
    """Main entry point."""
    parser = argparse.ArgumentParser(description="SMTP Relay Container")
    parser.add_argument("command", nargs="?", default="run",
                        choices=["run", "config", "initialize"],
                        help="Command to execute (default: run)")
    parser.add_argument("--check-dns", action="store_true",
                        help="With 'config', also check forward and reverse DNS")
    parser.add_argument("daemon", nargs="*",
                        help="With 'run', command to exec instead of 'postfix start-fg' "
                             "(separate it with --)")

    args = parser.parse_args(argv)

    if args.command == "run":
        return_code = run(args.daemon or None)
    elif args.command == "config":
        setup_logging()
        return_code = show_config(args.check_dns)
    elif args.command == "initialize":
        return_code = run_initialize()
    else:
        logger.error(f"Unknown command: {args.command}")
        return_code = 1

    sys.exit(return_code)

if __name__ == "__main__":
    main()
