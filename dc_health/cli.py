# cli.py
# dc-health: probe every domain controller and print the result matrix.
# Results go to stdout (JSON or CSV); progress and log locations go to stderr.
# Exit codes: 0 all Passed, 1 anything else recorded, 2 discovery/config failure.

import argparse
import csv
import sys
from functools import partial
from typing import List, Optional, Tuple

from dc_health import logs
from dc_health.capabilities import ping_host, remote_from_settings
from dc_health.config import Settings, load_settings, validate_settings
from dc_health.errors import DiscoveryError
from dc_health.models import ResultMatrix, ResultStatus
from dc_health.probes import Reachability, default_probes, select_probes
from dc_health.registry import HostRegistry, hostfile_lookup, srv_lookup, static_lookup
from dc_health.runner import ProbeRunner
from dc_health.site_creds import UNLOCK_ERRORS, credentials_for

EXIT_OK = 0
EXIT_PROBLEMS = 1
EXIT_ABORT = 2


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        description="Domain controller health probes: one status per (controller, check)."
    )
    ap.add_argument("--config", default=None, help="Path to dc_health.conf (default: ./dc_health.conf)")
    ap.add_argument("--domain", default=None, help="Discover controllers from this domain's SRV records")
    ap.add_argument("--hostfile", default=None, help="File of controller names instead of discovery")
    ap.add_argument("--site", default=None, help="Keyring service for credentials (default: domain)")
    ap.add_argument("--timeout", type=int, default=None, help="Per-call timeout seconds")
    ap.add_argument("--workers", type=int, default=None, help="Controllers probed in parallel")
    ap.add_argument("--log-dir", default=None, help="Directory for per-host log files")
    ap.add_argument("--format", choices=["json", "csv"], default="json")
    ap.add_argument("--probe", action="append", default=[], metavar="NAME",
                    help="Only run this probe (repeatable), e.g. Reachability, Service:NTDS, Diag:Replications")
    ap.add_argument("--no-creds", action="store_true",
                    help="Skip keyring; run remote queries as the current identity")
    ap.add_argument("hosts", nargs="*", help="Controller names (skip discovery)")
    return ap.parse_args(argv)


def _credentials(settings: Settings) -> Optional[Tuple[str, str]]:
    site = settings.credential_site
    try:
        creds = credentials_for(settings)
    except UNLOCK_ERRORS as err:
        logs.banner(f"[creds] {err}; using current identity")
        return None
    if not creds:
        logs.banner(f"[creds] no stored credentials for site '{site}'; using current identity")
        return None
    return creds[0]


def write_csv(matrix: ResultMatrix, out=None) -> None:
    writer = csv.writer(out or sys.stdout)
    columns = matrix.columns()
    writer.writerow(["Host"] + columns)
    for host, row in matrix.rows():
        cells = []
        for col in columns:
            cell = row.get(col)
            if cell is None:
                cells.append("")
            elif cell.status is ResultStatus.PASSED and cell.value is not None and cell.value is not True:
                val = cell.value
                cells.append(" ".join(str(v) for v in val.values()) if isinstance(val, dict) else str(val))
            else:
                cells.append(cell.status.value)
        writer.writerow([host] + cells)


def exit_code(matrix: ResultMatrix) -> int:
    counts = matrix.counts()
    problems = sum(n for status, n in counts.items() if status is not ResultStatus.PASSED)
    return EXIT_PROBLEMS if problems else EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings(args.config)
    except (OSError, ValueError) as err:
        logs.banner(f"[config] {err}")
        return EXIT_ABORT

    if args.domain:
        settings.domain = args.domain
    if args.site:
        settings.site = args.site
    if args.timeout is not None:
        settings.timeout = args.timeout
    if args.workers is not None:
        settings.workers = args.workers
    if args.log_dir:
        settings.log_dir = args.log_dir
    try:
        validate_settings(settings)
    except ValueError as err:
        logs.banner(f"[config] {err}")
        return EXIT_ABORT
    logs.set_log_dir(settings.log_dir)

    if args.hosts:
        lookup = static_lookup(args.hosts)
    elif args.hostfile:
        lookup = hostfile_lookup(args.hostfile)
    elif settings.domain:
        lookup = partial(srv_lookup, timeout=settings.timeout)
    else:
        logs.banner("[discovery] give controller names, --hostfile or --domain")
        return EXIT_ABORT

    try:
        hosts = HostRegistry(settings.domain, lookup).enumerate()
    except DiscoveryError as err:
        logs.banner(f"[discovery] {err}")
        return EXIT_ABORT
    logs.banner(f"[discovery] {len(hosts)} controller(s): {', '.join(h.name for h in hosts)}")

    credentials = None
    if not args.no_creds and settings.credential_site:
        credentials = _credentials(settings)

    remote = remote_from_settings(settings, credentials)
    ping = partial(ping_host, timeout=min(settings.timeout, 5))
    try:
        probes = select_probes(default_probes(remote, settings, ping), args.probe)
    except ValueError as err:
        logs.banner(f"[probes] {err}")
        return EXIT_ABORT

    runner = ProbeRunner(max_workers=settings.workers, reachability=Reachability(ping))
    matrix = runner.run(hosts, probes)

    for h in hosts:
        logs.banner(f"[log] {h.short} -> {logs.logfile(h.short)}")

    if args.format == "csv":
        write_csv(matrix)
    else:
        logs.emit_json({
            "domain": settings.domain,
            "probes": matrix.columns(),
            "summary": {s.value: n for s, n in matrix.counts().items()},
            "results": matrix.to_dict(),
        })
    return exit_code(matrix)


if __name__ == "__main__":
    raise SystemExit(main())
