# models.py
# Host identity, per-cell results and the host x probe result matrix for one run.

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class ResultStatus(str, Enum):
    """Outcome of one (host, probe) evaluation."""

    PASSED = "Passed"
    FAILED = "Failed"
    SKIPPED = "Skipped"
    ERROR = "Error"


@dataclass(frozen=True)
class Host:
    name: str
    address: Optional[str] = None

    @property
    def short(self) -> str:
        return self.name.split(".", 1)[0].lower()


@dataclass(frozen=True)
class ResultCell:
    status: ResultStatus
    value: Any = None
    detail: Optional[str] = None

    @classmethod
    def passed(cls, value: Any = None, detail: Optional[str] = None) -> "ResultCell":
        return cls(ResultStatus.PASSED, value, detail)

    @classmethod
    def failed(cls, value: Any = None, detail: Optional[str] = None) -> "ResultCell":
        return cls(ResultStatus.FAILED, value, detail)

    @classmethod
    def skipped(cls, detail: Optional[str] = None) -> "ResultCell":
        return cls(ResultStatus.SKIPPED, None, detail)

    @classmethod
    def error(cls, detail: Optional[str] = None) -> "ResultCell":
        return cls(ResultStatus.ERROR, None, detail)

    def to_dict(self) -> Dict[str, Any]:
        return {"status": self.status.value, "value": self.value, "detail": self.detail}


class ResultMatrix:
    """
    Host name -> probe name -> ResultCell, in insertion order.
    Written while a run is in progress; read-only once frozen.
    """

    def __init__(self) -> None:
        self._rows: Dict[str, Dict[str, ResultCell]] = {}
        self._columns: Dict[str, None] = {}
        self._frozen = False

    # ---------- writes ----------
    def add_host(self, host: str) -> None:
        self._check_writable()
        self._rows.setdefault(host, {})

    def put(self, host: str, probe: str, cell: ResultCell) -> None:
        self._check_writable()
        row = self._rows.setdefault(host, {})
        if probe in row:
            raise ValueError(f"{host}: result for probe '{probe}' already recorded")
        row[probe] = cell
        self._columns.setdefault(probe, None)

    def merge_row(self, host: str, row: Dict[str, ResultCell]) -> None:
        """Store a complete per-host row built elsewhere (one writer per host)."""
        self.add_host(host)
        for probe, cell in row.items():
            self.put(host, probe, cell)

    def freeze(self) -> "ResultMatrix":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def _check_writable(self) -> None:
        if self._frozen:
            raise RuntimeError("ResultMatrix is frozen; results are read-only after the run")

    # ---------- reads ----------
    def get(self, host: str, probe: str) -> ResultCell:
        return self._rows[host][probe]

    def hosts(self) -> List[str]:
        return list(self._rows)

    def columns(self) -> List[str]:
        return list(self._columns)

    def rows(self) -> Iterator[Tuple[str, Dict[str, ResultCell]]]:
        for host, row in self._rows.items():
            yield host, dict(row)

    def cell_count(self) -> int:
        return sum(len(row) for row in self._rows.values())

    def counts(self) -> Dict[ResultStatus, int]:
        totals = {status: 0 for status in ResultStatus}
        for row in self._rows.values():
            for cell in row.values():
                totals[cell.status] += 1
        return totals

    def to_dict(self) -> Dict[str, Dict[str, Dict[str, Any]]]:
        return {
            host: {probe: cell.to_dict() for probe, cell in row.items()}
            for host, row in self._rows.items()
        }

    def __len__(self) -> int:
        return len(self._rows)

    def __contains__(self, host: object) -> bool:
        return host in self._rows
