from datetime import datetime, timedelta, timezone

import pytest

from dc_health import logs
from dc_health.capabilities import VolumeSpace
from dc_health.errors import RemoteAccessDenied

NOW = datetime(2026, 10, 18, 12, 0, 0, tzinfo=timezone.utc)


@pytest.fixture(autouse=True)
def _log_dir(tmp_path, monkeypatch):
    monkeypatch.setattr(logs, "LOG_DIR", str(tmp_path / "logs"))


class FakeDirectory:
    """In-memory stand-in for every remote capability, keyed by host name."""

    def __init__(self):
        self.reachable = {"dc1": True, "dc2": False}
        self.booted = {"dc1": NOW - timedelta(hours=36)}
        self.services = {("dc1", "NTDS"): "Running", ("dc1", "DNS"): "Stopped"}
        self.denied = set()
        self.config = {"dc1": r"C:\Windows\NTDS\ntds.dit"}
        self.volumes = {("dc1", "C:"): VolumeSpace(50, 200)}
        self.diagnostics = {("dc1", "Replications"): True, ("dc1", "Advertising"): False}
        self.os_info = {"dc1": {"caption": "Microsoft Windows Server 2022 Standard", "version": "10.0.20348"}}
        self.calls = []

    def ping(self, host):
        self.calls.append(("ping", host))
        return self.reachable.get(host, False)

    def query_uptime(self, host):
        self.calls.append(("uptime", host))
        return self.booted[host]

    def query_service_state(self, host, service):
        self.calls.append(("service", host, service))
        if host in self.denied:
            raise RemoteAccessDenied("access denied: Access is denied.")
        return self.services[(host, service)]

    def read_remote_config_value(self, host, key_path, value_name):
        self.calls.append(("config", host, key_path, value_name))
        return self.config.get(host)

    def query_volume_space(self, host, volume_id):
        self.calls.append(("volume", host, volume_id))
        return self.volumes[(host, volume_id)]

    def invoke_diagnostic(self, host, test_name):
        self.calls.append(("diag", host, test_name))
        return self.diagnostics[(host, test_name)]

    def query_os_info(self, host):
        self.calls.append(("os", host))
        return self.os_info[host]

    def called_for(self, host):
        return [c for c in self.calls if c[1] == host]


@pytest.fixture
def directory():
    return FakeDirectory()
