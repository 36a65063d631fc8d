#!/usr/bin/env python3
"""
Access to Postfix main.cf directives through the postconf tool.
"""

import logging
import subprocess
from typing import List, Optional

logger = logging.getLogger('postconf')

class ConfigStore:
    """Key/value view of a daemon's persistent configuration."""

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

class PostconfStore(ConfigStore):
    """ConfigStore backed by `postconf -h` and `postconf -e`."""

    def __init__(self, config_dir: Optional[str] = None):
        self.config_dir = config_dir

    def _command(self, *args: str) -> List[str]:
        cmd = ["postconf"]
        if self.config_dir:
            cmd.extend(["-c", self.config_dir])
        cmd.extend(args)
        return cmd

    def get(self, key: str) -> Optional[str]:
        result = subprocess.run(
            self._command("-h", key),
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
            universal_newlines=True,
        )
        if result.returncode != 0:
            return None
        return result.stdout.rstrip("\n")

    def set(self, key: str, value: str) -> None:
        subprocess.run(self._command("-e", f"{key} = {value}"), check=True)

class RecordingStore(ConfigStore):
    """Wraps another store and remembers which keys were written."""

    def __init__(self, store: ConfigStore):
        self.store = store
        self.changed = []

    def get(self, key: str) -> Optional[str]:
        return self.store.get(key)

    def set(self, key: str, value: str) -> None:
        self.store.set(key, value)
        self.changed.append(key)

def set_directive(store: ConfigStore, key: str, value) -> bool:
    """
    Write a directive only if its current value differs.

    Args:
        store: Configuration store to reconcile
        key: Directive name
        value: Desired value, converted to str

    Returns:
        True if the store was written to, False if it already matched
    """
    value = str(value)
    current = store.get(key)
    if current is not None and current.strip() == value.strip():
        logger.debug(f"{key} already set, skipping")
        return False

    store.set(key, value)
    logger.debug(f"Set {key} = {value}")
    return True
