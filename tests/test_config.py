from pathlib import Path

import pytest

from ssh_provider.config import DEF_SETTINGS, Settings


def test_defaults():
    assert DEF_SETTINGS.handshake_timeout == 600
    assert DEF_SETTINGS.tcp_keepalive == 60
    assert DEF_SETTINGS.keepalive_interval == 60
    assert DEF_SETTINGS.agent_env_var == "SSH_AUTH_SOCK"
    assert DEF_SETTINGS.kubeconfig_path == "/etc/kubernetes/admin.conf"
    assert DEF_SETTINGS.strict_host_key_checking is True
    assert DEF_SETTINGS.insecure_skip_host_key is False


def test_from_env_overrides():
    s = Settings.from_env({
        "SSH_PROVIDER_HANDSHAKE_TIMEOUT": "30",
        "SSH_PROVIDER_TCP_KEEPALIVE": "10",
        "SSH_PROVIDER_STRICT_HOST_KEY_CHECKING": "no",
        "SSH_PROVIDER_KNOWN_HOSTS": "/etc/ssh/ssh_known_hosts",
        "SSH_PROVIDER_TMP_DIR": "/var/tmp",
    })
    assert s.handshake_timeout == 30.0
    assert s.tcp_keepalive == 10
    assert s.strict_host_key_checking is False
    assert s.known_hosts == Path("/etc/ssh/ssh_known_hosts")
    assert s.tmp_dir == "/var/tmp"
    assert s.keepalive_interval == DEF_SETTINGS.keepalive_interval


def test_from_env_empty_is_defaults():
    assert Settings.from_env({}) == DEF_SETTINGS


def test_from_env_bad_bool():
    with pytest.raises(ValueError, match="insecure_skip_host_key"):
        Settings.from_env({"SSH_PROVIDER_INSECURE_SKIP_HOST_KEY": "maybe"})
