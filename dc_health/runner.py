# runner.py
# Runs every probe against every host and fills one ResultMatrix per run.
# - reachability is evaluated first per host; gated probes are Skipped when it did not pass
# - any exception from a probe becomes an Error cell for that (host, probe) only
# - hosts may run on a bounded thread pool; probes within a host stay sequential

from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Iterable, List, Optional

from dc_health.logs import log, start_log
from dc_health.models import Host, ResultCell, ResultMatrix, ResultStatus
from dc_health.probes import Probe, Reachability

MAX_JOBS = 50


def _reject_duplicates(kind: str, names: List[str]) -> None:
    dupes = sorted({n for n in names if names.count(n) > 1})
    if dupes:
        raise ValueError(f"duplicate {kind} name(s): {', '.join(dupes)}")


class ProbeRunner:
    def __init__(self, max_workers: int = 1, reachability: Optional[Reachability] = None):
        """
        max_workers: hosts evaluated concurrently (1 = strictly sequential, capped at MAX_JOBS).
        reachability: probe used for the implicit precondition check when the requested
                      probes need reachability but do not include a Reachability probe.
        """
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self.max_workers = min(max_workers, MAX_JOBS)
        self.reachability = reachability

    def run(self, hosts: Iterable[Host], probes: Iterable[Probe],
            matrix: Optional[ResultMatrix] = None) -> ResultMatrix:
        hosts = list(hosts)
        probes = list(probes)
        _reject_duplicates("probe", [p.name for p in probes])
        _reject_duplicates("host", [h.name for h in hosts])

        matrix = matrix if matrix is not None else ResultMatrix()

        if self.max_workers == 1 or len(hosts) <= 1:
            for host in hosts:
                matrix.merge_row(host.name, self.run_host(host, probes))
        else:
            with ThreadPoolExecutor(max_workers=min(self.max_workers, len(hosts))) as executor:
                futures = [executor.submit(self.run_host, host, probes) for host in hosts]
                # merge in enumeration order; run_host never raises
                for host, fut in zip(hosts, futures):
                    matrix.merge_row(host.name, fut.result())

        return matrix.freeze()

    def run_host(self, host: Host, probes: List[Probe]) -> Dict[str, ResultCell]:
        """Evaluate all probes for one host and return its row in probe order."""
        short = host.short
        start_log(short, f"=== Checking {host.name} ===")
        row: Dict[str, ResultCell] = {}

        gate = next((p for p in probes if isinstance(p, Reachability)), None)
        gated = any(p.requires_reachability for p in probes)
        reach_cell: Optional[ResultCell] = None
        if gate is not None:
            reach_cell = self._evaluate(host, gate)
            row[gate.name] = reach_cell
        elif gated and self.reachability is not None:
            reach_cell = self._evaluate(host, self.reachability)
            log(short, f"[GATE] implicit reachability -> {reach_cell.status.value}")

        reachable = reach_cell is None or reach_cell.status is ResultStatus.PASSED

        for probe in probes:
            if probe is gate:
                continue
            if probe.requires_reachability and not reachable:
                cell = ResultCell.skipped(f"precondition failed: reachability {reach_cell.status.value}")
                log(short, f"[{probe.name}] skipped")
            else:
                cell = self._evaluate(host, probe)
            row[probe.name] = cell

        # keep the caller's probe order even though reachability ran first
        return {p.name: row[p.name] for p in probes}

    @staticmethod
    def _evaluate(host: Host, probe: Probe) -> ResultCell:
        try:
            cell = probe.evaluate(host)
        except Exception as exc:  # one bad (host, probe) pair must not stop the run
            detail = str(exc) or exc.__class__.__name__
            log(host.short, f"[{probe.name}] {exc.__class__.__name__}: {detail}")
            return ResultCell.error(detail)
        if not isinstance(cell, ResultCell):
            detail = f"{probe.name} returned {type(cell).__name__}"
            log(host.short, f"[{probe.name}] {detail}")
            return ResultCell.error(detail)
        log(host.short, f"[{probe.name}] {cell.status.value} value={cell.value!r}"
                        + (f" detail={cell.detail}" if cell.detail else ""))
        return cell
