# probes.py
# One class per check. Each probe wraps exactly one capability call and maps its
# answer onto a ResultCell; exceptions are left to the runner.

import math
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from dc_health.capabilities import VolumeSpace, has_wildcard, volume_of
from dc_health.config import NTDS_KEY, NTDS_VALUE
from dc_health.errors import RemoteQueryError
from dc_health.models import Host, ResultCell

SECONDS_PER_DAY = 86400
RUNNING_STATES = {"running"}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _target(host: Host) -> str:
    return host.address or host.name


class Probe:
    """
    A named check against one host. Stateless: one instance serves every host in a run.
    Subclasses set name and requires_reachability and implement evaluate().
    """

    name = "probe"
    requires_reachability = True

    def evaluate(self, host: Host) -> ResultCell:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} {self.name}>"


class Reachability(Probe):
    name = "Reachability"
    requires_reachability = False

    def __init__(self, ping: Callable[[str], bool]):
        self._ping = ping

    def evaluate(self, host: Host) -> ResultCell:
        if self._ping(_target(host)):
            return ResultCell.passed(True)
        return ResultCell.failed(False, "no reply to ping")


class Uptime(Probe):
    """Whole days since last boot, floored: 23.9 hours is 0 days."""

    name = "Uptime"
    requires_reachability = True

    def __init__(self, query_uptime: Callable[[str], datetime],
                 clock: Callable[[], datetime] = _utcnow, max_days: Optional[int] = None):
        self._query_uptime = query_uptime
        self._clock = clock
        self.max_days = max_days

    def evaluate(self, host: Host) -> ResultCell:
        booted = self._query_uptime(_target(host))
        elapsed = (self._clock() - booted).total_seconds()
        if elapsed < 0:
            raise RemoteQueryError(f"last boot {booted.isoformat()} is in the future")
        days = math.floor(elapsed / SECONDS_PER_DAY)
        if self.max_days is not None and days > self.max_days:
            return ResultCell.failed(days, f"up {days} days, limit {self.max_days}")
        return ResultCell.passed(days)


class ServiceStatus(Probe):
    """
    Running -> Passed, any other reported state -> Failed.
    A query that gets no answer raises, which the runner records as Error.
    """

    def __init__(self, service: str, query_service_state: Callable[[str, str], str],
                 requires_reachability: bool = True):
        if has_wildcard(service):
            raise ValueError(f"service name {service!r} contains wildcard characters; give an exact name")
        self.service = service
        self.name = f"Service:{service}"
        self.requires_reachability = requires_reachability
        self._query = query_service_state

    def evaluate(self, host: Host) -> ResultCell:
        state = self._query(_target(host), self.service)
        if state.strip().lower() in RUNNING_STATES:
            return ResultCell.passed(state)
        return ResultCell.failed(state, f"{self.service} is {state}")


class DiskFreePercent(Probe):
    """
    Free space on the volume holding the file named by a remote configuration value,
    as round(free / total * 100).
    """

    name = "DiskFreePercent"

    def __init__(self, read_config_value: Callable[[str, str, str], Optional[str]],
                 query_volume_space: Callable[[str, str], VolumeSpace],
                 key_path: str = NTDS_KEY, value_name: str = NTDS_VALUE,
                 min_free_percent: int = 10, requires_reachability: bool = True):
        self._read_config = read_config_value
        self._query_volume = query_volume_space
        self.key_path = key_path
        self.value_name = value_name
        self.min_free_percent = min_free_percent
        self.requires_reachability = requires_reachability

    def evaluate(self, host: Host) -> ResultCell:
        target = _target(host)
        path = self._read_config(target, self.key_path, self.value_name)
        if not path:
            return ResultCell.error(f"configuration not found: {self.key_path}\\{self.value_name}")
        volume = volume_of(path)
        space = self._query_volume(target, volume)
        if space.total_bytes <= 0:
            raise RemoteQueryError(f"volume {volume} reports size {space.total_bytes}")
        percent = round(space.free_bytes / space.total_bytes * 100)
        detail = f"{volume} ({path})"
        if percent < self.min_free_percent:
            return ResultCell.failed(percent, f"{detail} below {self.min_free_percent}% free")
        return ResultCell.passed(percent, detail)


class DiagnosticTest(Probe):
    requires_reachability = True

    def __init__(self, test: str, invoke_diagnostic: Callable[[str, str], bool]):
        self.test = test
        self.name = f"Diag:{test}"
        self._invoke = invoke_diagnostic

    def evaluate(self, host: Host) -> ResultCell:
        if self._invoke(_target(host), self.test):
            return ResultCell.passed("passed")
        return ResultCell.failed("failed", f"dcdiag failed test {self.test}")


class OSVersion(Probe):
    name = "OSVersion"

    def __init__(self, query_os_info: Callable[[str], Dict[str, str]],
                 requires_reachability: bool = True):
        self._query = query_os_info
        self.requires_reachability = requires_reachability

    def evaluate(self, host: Host) -> ResultCell:
        info = self._query(_target(host))
        return ResultCell.passed({"caption": info.get("caption", ""), "version": info.get("version", "")})


# ---------- standard battery ----------
def default_probes(remote: Any, settings, ping: Callable[[str], bool]) -> List[Probe]:
    """
    Reachability, Uptime, OSVersion, one ServiceStatus per configured service,
    DiskFreePercent for the NTDS database volume, one DiagnosticTest per dcdiag test.
    """
    probes: List[Probe] = [
        Reachability(ping),
        Uptime(remote.query_uptime, max_days=settings.max_uptime_days),
        OSVersion(remote.query_os_info),
    ]
    probes += [ServiceStatus(s, remote.query_service_state) for s in settings.services]
    probes.append(DiskFreePercent(
        remote.read_remote_config_value, remote.query_volume_space,
        key_path=settings.ntds_key, value_name=settings.ntds_value,
        min_free_percent=settings.min_free_percent,
    ))
    probes += [DiagnosticTest(t, remote.invoke_diagnostic) for t in settings.diagnostics]
    return probes


def select_probes(probes: List[Probe], names: List[str]) -> List[Probe]:
    """Keep probes whose name matches one of names (case-insensitive), in battery order."""
    if not names:
        return probes
    wanted = {n.lower() for n in names}
    chosen = [p for p in probes if p.name.lower() in wanted]
    unknown = wanted - {p.name.lower() for p in chosen}
    if unknown:
        raise ValueError(f"unknown probe(s): {', '.join(sorted(unknown))}")
    return chosen
