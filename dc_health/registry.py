# registry.py
# Target hosts for a run. The list comes from a lookup callable (domain -> hosts);
# any lookup failure aborts the run, an incomplete fleet list is never used.

import os
import re
from typing import Callable, Iterable, List, Optional, Sequence

from dc_health.capabilities import RC_NOT_FOUND, RC_TIMEOUT, run_cmd
from dc_health.errors import DiscoveryError
from dc_health.models import Host

SRV_RE = re.compile(r"has SRV record\s+\d+\s+\d+\s+\d+\s+(\S+)")
DC_SRV = "_ldap._tcp.dc._msdcs.{domain}"

Lookup = Callable[[str], Sequence[Host]]


class HostRegistry:
    def __init__(self, domain: str, lookup: Lookup):
        self.domain = domain
        self._lookup = lookup
        self._hosts: Optional[List[Host]] = None

    def enumerate(self) -> List[Host]:
        """Ordered, de-duplicated controllers for the domain. Raises DiscoveryError."""
        if self._hosts is not None:
            return list(self._hosts)
        try:
            found = list(self._lookup(self.domain))
        except DiscoveryError:
            raise
        except Exception as exc:
            raise DiscoveryError(f"directory lookup for {self.domain!r} failed: {exc}") from exc
        if not found:
            raise DiscoveryError(f"directory lookup for {self.domain!r} returned no controllers")

        hosts: List[Host] = []
        seen = set()
        for h in found:
            key = h.name.lower()
            if key in seen:
                continue
            seen.add(key)
            hosts.append(h)
        self._hosts = hosts
        return list(hosts)


# ---------- lookups ----------
def srv_lookup(domain: str, timeout: int = 10) -> List[Host]:
    """
    Domain controllers from the _ldap._tcp.dc._msdcs SRV records, e.g.
      _ldap._tcp.dc._msdcs.corp.example.com has SRV record 0 100 389 dc1.corp.example.com.
    """
    name = DC_SRV.format(domain=domain)
    rc, out = run_cmd("discovery", ["host", "-t", "SRV", name], timeout, "DNS")
    if rc == RC_TIMEOUT:
        raise DiscoveryError(f"SRV lookup for {name} timed out")
    if rc == RC_NOT_FOUND:
        raise DiscoveryError(out)
    if rc != 0:
        raise DiscoveryError(f"SRV lookup for {name} failed (rc={rc}): {out}")
    targets = [m.group(1).rstrip(".") for m in map(SRV_RE.search, out.splitlines()) if m]
    if not targets:
        raise DiscoveryError(f"no SRV records for {name}")
    return [Host(t) for t in sorted(set(targets), key=targets.index)]


def hostfile_lookup(path: str) -> Lookup:
    """
    Lookup over a file of hosts: one per line, optional address as second column,
    blank lines and # comments ignored. The domain argument is not used.
    """
    def _lookup(_domain: str) -> List[Host]:
        p = os.path.expanduser(path)
        try:
            with open(p, "r", encoding="utf-8") as f:
                lines = f.read().splitlines()
        except OSError as exc:
            raise DiscoveryError(f"cannot read host file {p}: {exc}") from exc
        hosts: List[Host] = []
        for ln in lines:
            line = ln.split("#", 1)[0].strip()
            if not line:
                continue
            parts = line.split()
            hosts.append(Host(parts[0], parts[1] if len(parts) > 1 else None))
        return hosts
    return _lookup


def static_lookup(names: Iterable[str]) -> Lookup:
    """Lookup over an explicit list of host names."""
    hosts = [Host(n.strip()) for n in names if n and n.strip()]

    def _lookup(_domain: str) -> List[Host]:
        return list(hosts)
    return _lookup
