# _logging.py
# CineStream - Structured logger with colored console output and optional JSON file output.
from __future__ import annotations
import sys, datetime, json, threading
from pathlib import Path
from typing import Any, Optional, TextIO, Mapping, Dict

RESET = "\033[0m"
DIM = "\033[90m"
RED = "\033[91m"
GREEN = "\033[92m"
YELLOW = "\033[33m"
BLUE = "\033[94m"

LEVELS = {"silent": 60, "error": 40, "warn": 30, "info": 20, "debug": 10}

# display label -> severity; unknown labels (e.g. "HTTP") log at info
_SEVERITY = {
    "DEBUG": "debug",
    "INFO": "info",
    "SUCCESS": "info",
    "WARN": "warn",
    "WARNING": "warn",
    "ERROR": "error",
}

_COLORS = {"DEBUG": YELLOW, "INFO": BLUE, "WARN": YELLOW, "ERROR": RED, "SUCCESS": GREEN, "HTTP": DIM}

# ── runtime debug gate: runtime.debug from the loaded config, or a forced override ──
_DEBUG_FROM_CFG = False
_DEBUG_OVERRIDE: Optional[bool] = None

def set_debug(on: Optional[bool]) -> None:
    """Force the DEBUG gate on/off; None returns control to runtime.debug."""
    global _DEBUG_OVERRIDE
    _DEBUG_OVERRIDE = on

def _debug_enabled() -> bool:
    return _DEBUG_OVERRIDE if _DEBUG_OVERRIDE is not None else _DEBUG_FROM_CFG

def mask_source(name: Optional[str]) -> str:
    """Embed hosts are never named in logs; 'vidlink' -> 'Source 2'."""
    from cs_platform.sources import name_to_id
    sid = name_to_id(name) if name else None
    return f"Source {sid}" if sid else "Source ?"

class Logger:
    def __init__(
        self,
        stream: TextIO = sys.stdout,
        level: str = "info",
        use_color: bool = True,
        time_fmt: str = "%Y-%m-%d %H:%M:%S",
        *,
        _context: Optional[Dict[str, Any]] = None,
        _json_stream: Optional[TextIO] = None,
        _lock: Optional[threading.Lock] = None,
    ):
        self.stream = stream
        self.level_no = LEVELS.get(level, 20)
        self.use_color = use_color
        self.time_fmt = time_fmt
        self._context: Dict[str, Any] = dict(_context or {})
        self._json_stream = _json_stream
        self._lock = _lock or threading.Lock()

    # Configuration
    def configure(self, cfg: Mapping[str, Any]) -> None:
        """Apply the runtime section: debug gate, JSON sink, color on a TTY only."""
        global _DEBUG_FROM_CFG
        rt = dict(cfg.get("runtime") or {})
        _DEBUG_FROM_CFG = bool(rt.get("debug"))
        if rt.get("log_json") and self._json_stream is None:
            p = Path(str(rt["log_json"]))
            p.parent.mkdir(parents=True, exist_ok=True)
            self._json_stream = open(p, "a", encoding="utf-8")
        self.use_color = bool(getattr(self.stream, "isatty", lambda: False)())

    def bind(self, **ctx: Any) -> "Logger":
        """Same sinks, extra context (module=... tags the line)."""
        return Logger(
            stream=self.stream,
            level=next((k for k, v in LEVELS.items() if v == self.level_no), "info"),
            use_color=self.use_color,
            time_fmt=self.time_fmt,
            _context={**self._context, **ctx},
            _json_stream=self._json_stream,
            _lock=self._lock,
        )

    # Output
    def _line(self, label: str, msg: str) -> str:
        # "[ts] [MODULE] LEVEL message"
        mod = str(self._context.get("module") or "").strip()
        col = _COLORS.get(label) if self.use_color else None
        lvl = f"{col}{label}{RESET}" if col else label
        ts = datetime.datetime.now().strftime(self.time_fmt)
        ts = f"{DIM}[{ts}]{RESET}" if self.use_color else f"[{ts}]"
        return " ".join(x for x in (ts, f"[{mod}]" if mod else "", lvl, msg) if x)

    def emit(self, label: str, msg: str, extra: Optional[Mapping[str, Any]] = None) -> None:
        severity = _SEVERITY.get(label, "info")
        if severity == "debug":
            if not _debug_enabled():
                return
        elif self.level_no > LEVELS[severity]:
            return
        with self._lock:
            self.stream.write(self._line(label, msg) + "\n")
            self.stream.flush()
            if self._json_stream is None:
                return
            rec: Dict[str, Any] = {
                "ts": datetime.datetime.now(datetime.timezone.utc).isoformat(timespec="milliseconds"),
                "level": label,
                "msg": msg,
                "ctx": self._context,
            }
            if extra:
                rec["extra"] = dict(extra)
            self._json_stream.write(json.dumps(rec, ensure_ascii=False, default=str) + "\n")
            self._json_stream.flush()

    # Callable adapter: log("text", level="WARN", module="PLAYTIME", extra={...})
    def __call__(
        self,
        message: str,
        *,
        level: str = "INFO",
        module: Optional[str] = None,
        extra: Optional[Mapping[str, Any]] = None,
    ) -> None:
        target = self.bind(module=module) if module else self
        label = (level or "INFO").upper()
        target.emit("WARN" if label == "WARNING" else label, message, extra)

# default instance
log = Logger()

__all__ = ["Logger", "log", "LEVELS", "set_debug", "mask_source"]
