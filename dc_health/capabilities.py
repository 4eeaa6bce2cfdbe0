# capabilities.py
# External calls used by the probes. Every call is time-bounded at the subprocess
# boundary and either answers or raises a ProbeError subclass.
# - ping_host: one ICMP echo via the local ping binary
# - PowerShellRemote: Invoke-Command script blocks on the controller, JSON back on stdout
#   (uptime, service state, registry value, volume space, dcdiag, OS info)

import html
import json
import os
import re
import subprocess
from collections import namedtuple
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from dc_health.errors import ProbeError, RemoteAccessDenied, RemoteQueryError, RemoteTimeoutError
from dc_health.logs import log, redact

TIMEOUT_DEF = 20
RC_TIMEOUT = 124
RC_NOT_FOUND = 127
BOOT_TIME_FMT = "%Y-%m-%dT%H:%M:%SZ"

VolumeSpace = namedtuple("VolumeSpace", ["free_bytes", "total_bytes"])

ACCESS_DENIED_TOKENS = ("access is denied", "unauthorized", "logon failure", "authentication")
TIMEOUT_TOKENS = ("timed out", "timeout", "operationtimedout")
# Get-Service -Name treats these as wildcard characters
PS_WILDCARDS = "*?[]"


# ---------- small utils ----------
def _short(h: str) -> str:
    return h.split(".", 1)[0].lower()


def run_cmd(short: str, argv: Sequence[str], timeout: int, tag: str,
            env: Optional[Dict[str, str]] = None, secrets: Sequence[str] = ()) -> Tuple[int, str]:
    """
    Run argv and capture combined output.
    Timeout -> rc 124, missing binary -> rc 127, so callers only inspect rc.
    """
    log(short, f"[{tag}] $ {redact(' '.join(argv), secrets)}")
    try:
        p = subprocess.run(
            list(argv),
            stdout=subprocess.PIPE, stderr=subprocess.STDOUT,
            text=True, timeout=timeout, env=env,
        )
    except subprocess.TimeoutExpired:
        log(short, f"[{tag}] timeout after {timeout}s")
        return RC_TIMEOUT, f"{tag.lower()}_timeout"
    except FileNotFoundError:
        log(short, f"[{tag}] {argv[0]} not found")
        return RC_NOT_FOUND, f"{argv[0]} not found"
    out = (p.stdout or "").strip()
    log(short, f"[{tag}] rc={p.returncode}\n{redact(out, secrets)}")
    return p.returncode, out


def json_parse(txt: str) -> Optional[dict]:
    """Pull the outermost {...} object out of noisy tool output."""
    t = html.unescape(txt or "")
    try:
        start = t.index("{")
        end = t.rindex("}") + 1
        obj = json.loads(t[start:end])
    except ValueError:
        return None
    return obj if isinstance(obj, dict) else None


def json_array_len(txt: str) -> Optional[int]:
    """Element count when the output is a JSON array (a pipeline that emitted several objects)."""
    t = html.unescape(txt or "")
    try:
        obj = json.loads(t[t.index("["):t.rindex("]") + 1])
    except ValueError:
        return None
    return len(obj) if isinstance(obj, list) else None


def has_wildcard(name: str) -> bool:
    return any(c in PS_WILDCARDS for c in name)


def ps_quote(s: str) -> str:
    """Single-quote a literal for PowerShell."""
    return "'" + str(s).replace("'", "''") + "'"


def classify_failure(rc: int, out: str) -> ProbeError:
    """Map a failed remote call to the matching ProbeError subclass."""
    text = (out or "").lower()
    last = (out or "").strip().splitlines()[-1:] or [""]
    if rc == RC_TIMEOUT or any(t in text for t in TIMEOUT_TOKENS):
        return RemoteTimeoutError(f"timed out: {last[0]}".rstrip(": "))
    if any(t in text for t in ACCESS_DENIED_TOKENS):
        return RemoteAccessDenied(f"access denied: {last[0]}")
    return RemoteQueryError(f"rc={rc}: {last[0]}")


# ---------- reachability ----------
def ping_host(host: str, timeout: int = 1) -> bool:
    """Return True if host answers a single ping within timeout seconds."""
    rc, out = run_cmd(_short(host), ["ping", "-c", "1", "-W", str(timeout), host],
                      timeout + 2, "PING")
    if rc == RC_NOT_FOUND:
        raise ProbeError(out)
    return rc == 0


# ---------- remote queries ----------
class PowerShellRemote:
    """
    Runs script blocks on a controller with Invoke-Command and parses the JSON they emit.
    Credentials travel in the child environment, never on the command line.
    """

    USER_ENV = "DC_HEALTH_USER"
    PW_ENV = "DC_HEALTH_PW"

    def __init__(self, powershell: str = "pwsh", credentials: Optional[Tuple[str, str]] = None,
                 timeout: int = TIMEOUT_DEF):
        self.powershell = powershell
        self.credentials = credentials
        self.timeout = timeout

    def _env(self) -> Dict[str, str]:
        env = os.environ.copy()
        env.pop(self.USER_ENV, None)
        env.pop(self.PW_ENV, None)
        if self.credentials:
            env[self.USER_ENV], env[self.PW_ENV] = self.credentials
        return env

    def build_command(self, host: str, script: str, args: Sequence[str] = ()) -> str:
        arg_list = ", ".join(ps_quote(a) for a in args)
        return "\n".join([
            "$ErrorActionPreference = 'Stop'",
            f"$params = @{{ ComputerName = {ps_quote(host)}; ScriptBlock = {{ {script} }} }}",
            f"$params.ArgumentList = @({arg_list})" if args else "",
            f"if ($env:{self.USER_ENV}) {{",
            f"  $sec = ConvertTo-SecureString $env:{self.PW_ENV} -AsPlainText -Force",
            f"  $params.Credential = New-Object System.Management.Automation.PSCredential($env:{self.USER_ENV}, $sec)",
            "}",
            "Invoke-Command @params | Select-Object * -ExcludeProperty PSComputerName, RunspaceId, PSShowComputerName"
            " | ConvertTo-Json -Compress -Depth 4",
        ])

    def invoke(self, host: str, script: str, args: Sequence[str] = (), tag: str = "PS") -> dict:
        cmd = self.build_command(host, script, args)
        argv = [self.powershell, "-NoProfile", "-NonInteractive", "-Command", cmd]
        secrets = [self.credentials[1]] if self.credentials else []
        rc, out = run_cmd(_short(host), argv, self.timeout, tag, env=self._env(), secrets=secrets)
        if rc != 0:
            raise classify_failure(rc, redact(out, secrets))
        obj = json_parse(out)
        if obj is None:
            count = json_array_len(out)
            if count is not None:
                raise RemoteQueryError(f"{tag} returned {count} objects; expected one")
            raise RemoteQueryError(f"unparseable output from {tag}: {out[:120]!r}")
        return obj

    # ---------- capabilities ----------
    def query_uptime(self, host: str) -> datetime:
        """Last boot time as an aware UTC datetime."""
        obj = self.invoke(
            host,
            "$os = Get-CimInstance Win32_OperatingSystem; "
            "[pscustomobject]@{ LastBootUpTime = $os.LastBootUpTime.ToUniversalTime()"
            ".ToString('yyyy-MM-ddTHH:mm:ssZ') }",
            tag="UPTIME",
        )
        raw = str(obj.get("LastBootUpTime") or "").strip()
        try:
            return datetime.strptime(raw, BOOT_TIME_FMT).replace(tzinfo=timezone.utc)
        except ValueError:
            raise RemoteQueryError(f"bad LastBootUpTime: {raw!r}")

    def query_service_state(self, host: str, service: str) -> str:
        if has_wildcard(service):
            raise RemoteQueryError(f"service name {service!r} contains wildcard characters; give an exact name")
        obj = self.invoke(
            host,
            "param($n) $s = Get-Service -Name $n; "
            "[pscustomobject]@{ Name = $s.Name; Status = [string]$s.Status }",
            args=[service],
            tag="SERVICE",
        )
        state = str(obj.get("Status") or "").strip()
        if not state:
            raise RemoteQueryError(f"no state reported for service {service}")
        return state

    def read_remote_config_value(self, host: str, key_path: str, value_name: str) -> Optional[str]:
        """Registry value as a string, or None when the key or value is absent."""
        obj = self.invoke(
            host,
            "param($k, $v) $p = Get-ItemProperty -Path $k -Name $v -ErrorAction SilentlyContinue; "
            "if ($p) { [pscustomobject]@{ Found = $true; Value = [string]$p.$v } } "
            "else { [pscustomobject]@{ Found = $false; Value = $null } }",
            args=[key_path, value_name],
            tag="REGISTRY",
        )
        if not obj.get("Found"):
            return None
        val = obj.get("Value")
        return str(val) if val not in (None, "") else None

    def query_volume_space(self, host: str, volume_id: str) -> VolumeSpace:
        obj = self.invoke(
            host,
            "param($d) $v = Get-CimInstance Win32_LogicalDisk -Filter \"DeviceID='$d'\"; "
            "if (-not $v) { throw \"volume $d not found\" }; "
            "[pscustomobject]@{ FreeSpace = [uint64]$v.FreeSpace; Size = [uint64]$v.Size }",
            args=[volume_id],
            tag="VOLUME",
        )
        try:
            return VolumeSpace(int(obj["FreeSpace"]), int(obj["Size"]))
        except (KeyError, TypeError, ValueError):
            raise RemoteQueryError(f"bad volume data for {volume_id}: {obj!r}")

    def invoke_diagnostic(self, host: str, test_name: str) -> bool:
        """Run dcdiag /test:<name> on the controller; True when it reports a pass."""
        obj = self.invoke(
            host,
            "param($t) $out = & dcdiag.exe \"/test:$t\" 2>&1 | Out-String; "
            "[pscustomobject]@{ ExitCode = $LASTEXITCODE; Output = $out }",
            args=[test_name],
            tag="DCDIAG",
        )
        return parse_dcdiag(str(obj.get("Output") or ""), test_name)

    def query_os_info(self, host: str) -> Dict[str, str]:
        obj = self.invoke(
            host,
            "$os = Get-CimInstance Win32_OperatingSystem; "
            "[pscustomobject]@{ Caption = [string]$os.Caption; Version = [string]$os.Version }",
            tag="OS",
        )
        caption = str(obj.get("Caption") or "").strip()
        version = str(obj.get("Version") or "").strip()
        if not caption and not version:
            raise RemoteQueryError("empty OS information")
        return {"caption": caption, "version": version}


def parse_dcdiag(output: str, test_name: str) -> bool:
    """
    dcdiag prints '... <server> passed test <Name>' or '... failed test <Name>'.
    Anything else means the tool did not run the test.
    """
    verdicts: List[str] = re.findall(
        r"\b(passed|failed)\s+test\s+" + re.escape(test_name) + r"\b",
        output, flags=re.IGNORECASE,
    )
    if not verdicts:
        raise RemoteQueryError(f"dcdiag reported no verdict for test {test_name}")
    return all(v.lower() == "passed" for v in verdicts)


def remote_from_settings(settings, credentials: Optional[Tuple[str, str]] = None) -> PowerShellRemote:
    return PowerShellRemote(powershell=settings.powershell, credentials=credentials,
                            timeout=settings.timeout)


def volume_of(path: str) -> str:
    """'C:\\Windows\\NTDS\\ntds.dit' -> 'C:'"""
    m = re.match(r"^\s*([A-Za-z]):", path or "")
    if not m:
        raise RemoteQueryError(f"cannot derive volume from path {path!r}")
    return m.group(1).upper() + ":"


