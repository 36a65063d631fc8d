import os
import subprocess

import pytest

from config import PathsConfig, from_environment
from postconf import ConfigStore

TEMPLATES_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))), "templates")

MASTER_CF = """\
# service type  private unpriv  chroot  wakeup  maxproc command + args
smtp      inet  n       -       y       -       -       smtpd
pickup    unix  n       -       y       60      1       pickup
"""


class FakeStore(ConfigStore):
    """In-memory stand-in for postconf."""

    def __init__(self, initial=None):
        self.values = dict(initial or {})
        self.writes = []

    def get(self, key):
        return self.values.get(key)

    def set(self, key, value):
        self.writes.append((key, value))
        self.values[key] = value


class FakeRunner:
    """Replacement for subprocess.run that records commands instead of running them."""

    def __init__(self):
        self.calls = []
        self.failures = set()
        self.hooks = {}

    def fail(self, name):
        self.failures.add(name)

    def commands(self, name):
        return [cmd for cmd in self.calls if cmd[0] == name]

    def __call__(self, cmd, check=False, **kwargs):
        cmd = list(cmd)
        self.calls.append(cmd)
        if cmd[0] in self.hooks:
            self.hooks[cmd[0]](cmd)
        returncode = 1 if cmd[0] in self.failures else 0
        if check and returncode:
            raise subprocess.CalledProcessError(returncode, cmd)
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="")


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def runner(monkeypatch):
    fake = FakeRunner()
    monkeypatch.setattr(subprocess, "run", fake)
    return fake


@pytest.fixture
def paths(tmp_path):
    postfix_dir = tmp_path / "postfix"
    postfix_dir.mkdir()
    (postfix_dir / "master.cf").write_text(MASTER_CF)
    return PathsConfig(
        postfix_dir=str(postfix_dir),
        dovecot_dir=str(tmp_path / "dovecot"),
        templates_dir=TEMPLATES_DIR,
    )


@pytest.fixture
def make_config(paths, tmp_path):
    """Build a configuration from an environment dict, rooted in tmp_path."""
    def _make(**env):
        env.setdefault("RELAY_MYHOSTNAME", "relay.example.com")
        env.setdefault("TLS_CERT", str(tmp_path / "certs" / "relay-cert.pem"))
        env.setdefault("TLS_KEY", str(tmp_path / "certs" / "relay-key.pem"))
        config = from_environment(env)
        config.paths = paths
        return config
    return _make
