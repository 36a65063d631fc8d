import os
import subprocess

import pytest

from relay_config import ensure_relay_auth, relay_map_name


RELAY_ENV = {
    "RELAYHOST": "[smtp.example.net]:587",
    "RELAYHOST_USERNAME": "relayuser",
    "RELAYHOST_PASSWORD": "relaypass",
}


def capture_source(captured):
    def hook(cmd):
        path = cmd[1].split(":", 1)[1]
        with open(path) as f:
            captured.append(f.read())
    return hook


def test_unset_relayhost_clears_stale_value(make_config, store):
    store.values.update({"relayhost": "[old.example.net]:587", "smtp_sasl_auth_enable": "yes"})
    ensure_relay_auth(make_config(), store)
    assert store.values["relayhost"] == ""
    assert store.values["smtp_sasl_auth_enable"] == "no"


def test_relayhost_without_credentials(make_config, store, runner):
    ensure_relay_auth(make_config(RELAYHOST="[smtp.example.net]:25"), store)
    assert store.values["relayhost"] == "[smtp.example.net]:25"
    assert store.values["smtp_sasl_auth_enable"] == "no"
    assert runner.commands("postmap") == []


def test_relay_credentials_compiled_and_plaintext_removed(make_config, store, runner):
    captured = []
    runner.hooks["postmap"] = capture_source(captured)
    config = make_config(**RELAY_ENV)

    ensure_relay_auth(config, store)

    assert runner.commands("postmap") == [["postmap", f"lmdb:{config.paths.sasl_passwd}"]]
    assert captured == ["[smtp.example.net]:587 relayuser:relaypass\n"]
    assert not os.path.exists(config.paths.sasl_passwd)
    assert store.values["relayhost"] == "[smtp.example.net]:587"
    assert store.values["smtp_sasl_auth_enable"] == "yes"
    assert store.values["smtp_sasl_password_maps"] == relay_map_name(config)
    assert store.values["smtp_sasl_security_options"] == "noanonymous"
    assert store.values["smtp_sasl_tls_security_options"] == "noanonymous"


def test_plaintext_removed_when_postmap_fails(make_config, store, runner):
    runner.fail("postmap")
    config = make_config(**RELAY_ENV)

    with pytest.raises(subprocess.CalledProcessError):
        ensure_relay_auth(config, store)

    assert not os.path.exists(config.paths.sasl_passwd)
    assert "smtp_sasl_password_maps" not in store.values


def test_map_type_override(make_config, store, runner):
    config = make_config(POSTFIX_MAP_TYPE="hash", **RELAY_ENV)
    ensure_relay_auth(config, store)
    assert store.values["smtp_sasl_password_maps"] == f"hash:{config.paths.sasl_passwd}"
