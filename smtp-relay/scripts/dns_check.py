#!/usr/bin/env python3
"""
DNS sanity checks for the relay hostname.
Receiving servers commonly reject mail from hosts whose reverse DNS does
not point back at the name they announce.
"""

import logging
from typing import List

import dns.exception
import dns.resolver
import dns.reversename
from tabulate import tabulate

from config import RelayConfig

logger = logging.getLogger('dns_check')

def make_resolver(timeout: float = 5) -> dns.resolver.Resolver:
    resolver = dns.resolver.Resolver()
    resolver.timeout = timeout
    resolver.lifetime = timeout
    return resolver

def lookup_addresses(resolver: dns.resolver.Resolver, hostname: str, rdtype: str) -> List[str]:
    try:
        answers = resolver.resolve(hostname, rdtype)
    except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
        return []
    return [rdata.to_text() for rdata in answers]

def check_dns_records(config: RelayConfig, resolver=None) -> List[list]:
    """
    Check forward and reverse DNS for the configured hostname.

    Returns rows of [TYPE, NAME, VALID, CURRENT VALUE, EXPECTED VALUE].
    Lookup errors are reported in the rows instead of raised.
    """
    if resolver is None:
        resolver = make_resolver()

    hostname = config.identity.hostname.rstrip('.')
    results = []
    addresses = []

    for rdtype in ("A", "AAAA"):
        try:
            found = lookup_addresses(resolver, hostname, rdtype)
            current = ", ".join(found) if found else "Not found"
        except dns.exception.DNSException as e:
            found = []
            current = f"Error: {e}"
        addresses.extend(found)
        results.append([rdtype, hostname, bool(found), current, "address of this relay"])

    if not addresses:
        results.append(["PTR", hostname, False, "No address to check", f"{hostname}."])

    for address in addresses:
        ptr_name = dns.reversename.from_address(address).to_text()
        try:
            names = [rdata.to_text() for rdata in resolver.resolve(ptr_name, "PTR")]
            current = ", ".join(names)
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer):
            names = []
            current = "Not found"
        except dns.exception.DNSException as e:
            names = []
            current = f"Error: {e}"
        valid = any(name.rstrip('.').lower() == hostname.lower() for name in names)
        results.append(["PTR", ptr_name, valid, current, f"{hostname}."])

    return results

def show_dns_table(dns_results) -> str:
    """Format DNS check results as a table with a one-line verdict."""
    if not dns_results:
        return ""

    table = tabulate(
        dns_results,
        headers=["TYPE", "NAME", "VALID", "CURRENT VALUE", "EXPECTED VALUE"],
        tablefmt="pretty"
    )
    valid_count = sum(1 for r in dns_results if r[2])
    if valid_count == len(dns_results):
        verdict = "Forward and reverse DNS match the relay hostname"
    else:
        verdict = "Reverse DNS does not match: remote servers may reject relayed mail"
    return f"{table}\n{verdict}\n"
