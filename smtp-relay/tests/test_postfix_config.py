import os
import subprocess

import pytest

import postfix_config
from postfix_config import (
    apply_base_configuration,
    check_postfix,
    disable_smtpd_chroot,
    ensure_aliases,
    exec_daemon,
)


def test_disable_smtpd_chroot(make_config):
    config = make_config()
    assert disable_smtpd_chroot(config) is True
    with open(config.paths.master_cf) as f:
        lines = f.read().splitlines()
    assert lines[1].split() == ["smtp", "inet", "n", "-", "n", "-", "-", "smtpd"]
    # other services keep their chroot setting
    assert lines[2].split()[4] == "y"


def test_disable_smtpd_chroot_is_idempotent(make_config):
    config = make_config()
    disable_smtpd_chroot(config)
    with open(config.paths.master_cf) as f:
        content = f.read()
    assert disable_smtpd_chroot(config) is False
    with open(config.paths.master_cf) as f:
        assert f.read() == content


def test_disable_smtpd_chroot_without_master_cf(make_config):
    config = make_config()
    os.remove(config.paths.master_cf)
    assert disable_smtpd_chroot(config) is False


def test_ensure_aliases(make_config, runner):
    config = make_config()
    ensure_aliases(config)
    assert os.path.exists(config.paths.aliases)
    assert runner.calls == [["newaliases"]]


def test_base_configuration(make_config, store):
    config = make_config(ALLOWED_NETWORKS="10.0.0.0/8, 192.168.1.0/24", MESSAGE_SIZE_LIMIT="2048")
    apply_base_configuration(config, store)
    values = store.values
    assert values["myhostname"] == "relay.example.com"
    assert values["mydomain"] == "example.com"
    assert values["myorigin"] == "example.com"
    assert values["mydestination"] == "localhost.localdomain, localhost"
    assert values["mynetworks"] == "10.0.0.0/8 192.168.1.0/24"
    assert values["inet_interfaces"] == "all"
    assert values["inet_protocols"] == "all"
    assert values["message_size_limit"] == "2048"
    assert values["smtpd_recipient_restrictions"] == (
        "permit_mynetworks, permit_sasl_authenticated, reject_unauth_destination"
    )
    assert values["smtpd_helo_required"] == "yes"
    assert values["smtpd_banner"] == "relay.example.com ESMTP"
    assert values["maillog_file"] == "/dev/stdout"
    assert values["smtpd_use_tls"] == "yes"


def test_base_configuration_twice_writes_nothing_new(make_config, store):
    config = make_config()
    apply_base_configuration(config, store)
    first = len(store.writes)
    apply_base_configuration(config, store)
    assert len(store.writes) == first


def test_check_postfix(make_config, runner):
    config = make_config()
    check_postfix(config)
    assert runner.calls == [["postfix", "-c", config.paths.postfix_dir, "check"]]


def test_check_postfix_failure_raises(make_config, runner):
    runner.fail("postfix")
    with pytest.raises(subprocess.CalledProcessError):
        check_postfix(make_config())


def test_exec_daemon_replaces_process(monkeypatch):
    calls = []
    monkeypatch.setattr(postfix_config.os, "execvp", lambda file, args: calls.append((file, args)))
    exec_daemon()
    exec_daemon(["sh", "-c", "sleep infinity"])
    assert calls == [
        ("postfix", ["postfix", "start-fg"]),
        ("sh", ["sh", "-c", "sleep infinity"]),
    ]
