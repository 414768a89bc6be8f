# src/bakerst/observers/logger.py
from __future__ import annotations
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from .interface import Observer
from .events import BaseEvent


class LoggerObserver:
    def __init__(self, logger: logging.Logger):
        self.logger = logger

    def notify(self, event: BaseEvent) -> None:
        d = event.dict()
        etype = event.__class__.__name__
        msg = ", ".join(f"{k}={v}" for k, v in d.items())

        self.logger.debug(f"[EVENT] {etype}: {msg}")


class JsonFileObserver(Observer):
    def __init__(self, path: str | Path, run_id: str):
        self.path = Path(path)
        self.run_id = run_id
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def notify(self, event: BaseEvent) -> None:
        ts = datetime.now(timezone.utc).isoformat(timespec="seconds")
        with self.path.open("a") as f:
            json.dump({"type": event.__class__.__name__, "ts": ts, "run_id": self.run_id, **event.dict()}, f)
            f.write("\n")
