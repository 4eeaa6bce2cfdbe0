# logs.py
# stdout/stderr discipline and per-host log files.
# - stderr: short operator banners
# - stdout: machine-readable results only
# - <log_dir>/dc_health_<short>.log: commands, exit codes, output, cell outcomes

import json
import os
import sys
from datetime import datetime
from typing import Iterable

LOG_DIR = os.environ.get("DC_HEALTH_LOG_DIR", "/tmp")


def set_log_dir(path: str) -> None:
    global LOG_DIR
    LOG_DIR = os.path.expanduser(path)


def banner(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)


def emit_json(obj) -> None:
    print(json.dumps(obj, separators=(",", ":")), flush=True)


def _ts() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


def logfile(short: str) -> str:
    return os.path.join(LOG_DIR, f"dc_health_{short}.log")


def start_log(short: str, header: str) -> None:
    """Truncate the host log and write a header line."""
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
        with open(logfile(short), "w", encoding="utf-8") as f:
            f.write(f"[{_ts()}] {header}\n")
    except OSError:
        pass


def log(short: str, text: str) -> None:
    try:
        os.makedirs(LOG_DIR, exist_ok=True)
        with open(logfile(short), "a", encoding="utf-8") as f:
            f.write(f"[{_ts()}] {text}\n")
    except OSError:
        pass


def redact(text: str, secrets: Iterable[str]) -> str:
    """Replace every non-empty secret in text with *pass*."""
    for s in secrets:
        if s and s in text:
            text = text.replace(s, "*pass*")
    return text
