import subprocess

import pytest

from dc_health import capabilities
from dc_health.errors import DiscoveryError
from dc_health.models import Host
from dc_health.registry import HostRegistry, hostfile_lookup, srv_lookup, static_lookup

SRV_OUT = """\
_ldap._tcp.dc._msdcs.corp.example.com has SRV record 0 100 389 dc2.corp.example.com.
_ldap._tcp.dc._msdcs.corp.example.com has SRV record 0 100 389 dc1.corp.example.com.
_ldap._tcp.dc._msdcs.corp.example.com has SRV record 0 100 389 dc2.corp.example.com.
"""


def _fake_host_cmd(monkeypatch, rc=0, out="", exc=None):
    calls = []

    def fake(argv, **kwargs):
        calls.append(argv)
        if exc is not None:
            raise exc
        return subprocess.CompletedProcess(argv, rc, stdout=out)

    monkeypatch.setattr(capabilities.subprocess, "run", fake)
    return calls


def test_srv_lookup(monkeypatch):
    calls = _fake_host_cmd(monkeypatch, out=SRV_OUT)

    hosts = srv_lookup("corp.example.com")

    assert calls[0] == ["host", "-t", "SRV", "_ldap._tcp.dc._msdcs.corp.example.com"]
    assert hosts == [Host("dc2.corp.example.com"), Host("dc1.corp.example.com")]


def test_srv_lookup_nxdomain(monkeypatch):
    _fake_host_cmd(monkeypatch, rc=1, out="Host _ldap._tcp.dc._msdcs.nope not found: 3(NXDOMAIN)")
    with pytest.raises(DiscoveryError, match="NXDOMAIN"):
        srv_lookup("nope")


def test_srv_lookup_timeout(monkeypatch):
    _fake_host_cmd(monkeypatch, exc=subprocess.TimeoutExpired("host", 10))
    with pytest.raises(DiscoveryError, match="timed out"):
        srv_lookup("corp.example.com")


def test_srv_lookup_without_records(monkeypatch):
    _fake_host_cmd(monkeypatch, out="corp.example.com has no SRV record")
    with pytest.raises(DiscoveryError):
        srv_lookup("corp.example.com")


def test_registry_dedupes_and_keeps_order():
    lookup = static_lookup(["dc1.corp", "DC2.corp", "dc1.CORP", " "])
    registry = HostRegistry("corp", lookup)

    assert [h.name for h in registry.enumerate()] == ["dc1.corp", "DC2.corp"]


def test_registry_caches_lookup():
    calls = []

    def lookup(domain):
        calls.append(domain)
        return [Host("dc1")]

    registry = HostRegistry("corp", lookup)
    registry.enumerate()
    registry.enumerate()
    assert calls == ["corp"]


def test_registry_wraps_lookup_failure():
    def lookup(domain):
        raise ConnectionError("LDAP server unavailable")

    with pytest.raises(DiscoveryError, match="LDAP server unavailable"):
        HostRegistry("corp", lookup).enumerate()


def test_registry_empty_result_aborts():
    with pytest.raises(DiscoveryError, match="no controllers"):
        HostRegistry("corp", lambda d: []).enumerate()


def test_hostfile_lookup(tmp_path):
    path = tmp_path / "dcs.txt"
    path.write_text("# site A\ndc1.corp 10.0.0.10\n\ndc2.corp  # no address\n")

    hosts = hostfile_lookup(str(path))("corp")

    assert hosts == [Host("dc1.corp", "10.0.0.10"), Host("dc2.corp")]


def test_hostfile_missing(tmp_path):
    with pytest.raises(DiscoveryError, match="cannot read host file"):
        HostRegistry("corp", hostfile_lookup(str(tmp_path / "missing.txt"))).enumerate()
