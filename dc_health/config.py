# config.py
# dc_health.conf loader. CLI flags override file values; a missing file means built-in defaults.
#
# [general]
# domain     = corp.example.com
# site       = corp
# users      = svc-dchealth, Administrator
# timeout    = 20
# workers    = 1
# log_dir    = /tmp
# powershell = pwsh
# keyring_master = ~/.keyring-master
# keyring_file   = ~/.local/share/python_keyring/crypted_pass.cfg
#
# [probes]
# services         = NTDS, DNS, Netlogon
# diagnostics      = Netlogons, Replications, Services, Advertising, FSMOCheck
# min_free_percent = 10
# max_uptime_days  =
# ntds_key         = HKLM:\SYSTEM\CurrentControlSet\Services\NTDS\Parameters
# ntds_value       = DSA Database file

import configparser
import os
from typing import List, Optional

DEFAULT_CONFIG = "dc_health.conf"
TIMEOUT_DEF = 20

DEFAULT_SERVICES = ["NTDS", "DNS", "Netlogon"]
DEFAULT_DIAGNOSTICS = ["Netlogons", "Replications", "Services", "Advertising", "FSMOCheck"]
NTDS_KEY = r"HKLM:\SYSTEM\CurrentControlSet\Services\NTDS\Parameters"
NTDS_VALUE = "DSA Database file"

KEYRING_MASTER = "~/.keyring-master"
KEYRING_FILE = "~/.local/share/python_keyring/crypted_pass.cfg"
DEFAULT_USERS = ["svc-dchealth", "Administrator"]


def _split(val: str) -> List[str]:
    return [x.strip() for x in (val or "").split(",") if x.strip()]


class Settings:
    """Typed view over dc_health.conf."""

    def __init__(self) -> None:
        self.domain: str = ""
        self.site: str = ""
        self.users: List[str] = []
        self.timeout: int = TIMEOUT_DEF
        self.workers: int = 1
        self.log_dir: str = "/tmp"
        self.powershell: str = "pwsh"
        self.keyring_master: str = KEYRING_MASTER
        self.keyring_file: str = KEYRING_FILE
        self.services: List[str] = list(DEFAULT_SERVICES)
        self.diagnostics: List[str] = list(DEFAULT_DIAGNOSTICS)
        self.min_free_percent: int = 10
        self.max_uptime_days: Optional[int] = None
        self.ntds_key: str = NTDS_KEY
        self.ntds_value: str = NTDS_VALUE

    @property
    def credential_site(self) -> str:
        """Keyring service name: explicit site, else the domain."""
        return self.site or self.domain

    @property
    def credential_users(self) -> List[str]:
        return self.users or list(DEFAULT_USERS)


def load_settings(path: Optional[str] = None) -> Settings:
    """
    Read settings from path, $DC_HEALTH_CONFIG or ./dc_health.conf.
    An explicitly named file that does not exist is an error.
    """
    explicit = path or os.environ.get("DC_HEALTH_CONFIG")
    conf_path = os.path.expanduser(explicit or DEFAULT_CONFIG)

    settings = Settings()
    if not os.path.isfile(conf_path):
        if explicit:
            raise FileNotFoundError(f"Config file not found: {conf_path}")
        return settings

    cp = configparser.ConfigParser(interpolation=None)
    cp.optionxform = str
    cp.read(conf_path, encoding="utf-8")

    if cp.has_section("general"):
        g = cp["general"]
        settings.domain = g.get("domain", settings.domain).strip()
        settings.site = g.get("site", settings.site).strip()
        settings.users = _split(g.get("users", ""))
        settings.timeout = g.getint("timeout", fallback=settings.timeout)
        settings.workers = g.getint("workers", fallback=settings.workers)
        settings.log_dir = g.get("log_dir", settings.log_dir).strip()
        settings.powershell = g.get("powershell", settings.powershell).strip()
        settings.keyring_master = g.get("keyring_master", settings.keyring_master).strip()
        settings.keyring_file = g.get("keyring_file", settings.keyring_file).strip()

    if cp.has_section("probes"):
        p = cp["probes"]
        if "services" in p:
            settings.services = _split(p["services"])
        if "diagnostics" in p:
            settings.diagnostics = _split(p["diagnostics"])
        settings.min_free_percent = p.getint("min_free_percent", fallback=settings.min_free_percent)
        max_days = p.get("max_uptime_days", "").strip()
        settings.max_uptime_days = int(max_days) if max_days else None
        settings.ntds_key = p.get("ntds_key", settings.ntds_key).strip()
        settings.ntds_value = p.get("ntds_value", settings.ntds_value).strip()

    return validate_settings(settings)


def validate_settings(settings: Settings) -> Settings:
    """Range checks shared by the file loader and CLI overrides."""
    if settings.timeout <= 0:
        raise ValueError(f"timeout must be positive, got {settings.timeout}")
    if settings.workers <= 0:
        raise ValueError(f"workers must be positive, got {settings.workers}")
    if not 0 <= settings.min_free_percent <= 100:
        raise ValueError(f"min_free_percent must be 0-100, got {settings.min_free_percent}")
    if settings.max_uptime_days is not None and settings.max_uptime_days < 0:
        raise ValueError(f"max_uptime_days must not be negative, got {settings.max_uptime_days}")
    return settings
