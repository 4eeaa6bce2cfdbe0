# dc_health: domain controller health probes.

from dc_health.errors import DiscoveryError, ProbeError
from dc_health.models import Host, ResultCell, ResultMatrix, ResultStatus
from dc_health.registry import HostRegistry
from dc_health.runner import ProbeRunner

__version__ = "0.1.0"

__all__ = [
    "DiscoveryError",
    "Host",
    "HostRegistry",
    "ProbeError",
    "ProbeRunner",
    "ResultCell",
    "ResultMatrix",
    "ResultStatus",
]
