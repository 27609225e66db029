import json
import logging
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict


class AuditLogger:
    """Structured audit logger that writes append-only JSON records.

    Records every command sent to a controller and every liveness change,
    independent of the application log level.
    """

    def __init__(self, log_path: str, level: str = "INFO", *, logger_name: str = "waterkontrol.audit") -> None:
        self.log_path = Path(log_path)
        self.log_path.parent.mkdir(parents=True, exist_ok=True)

        self.logger = logging.getLogger(logger_name)
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self.logger.propagate = False

        if not any(isinstance(handler, RotatingFileHandler) for handler in self.logger.handlers):
            handler = RotatingFileHandler(
                filename=str(self.log_path),
                maxBytes=10 * 1024 * 1024,  # 10 MB
                backupCount=30,
                encoding="utf-8",
                delay=True,
            )
            handler.setFormatter(
                logging.Formatter(
                    fmt="%(asctime)sZ | %(levelname)s | %(message)s",
                    datefmt="%Y-%m-%dT%H:%M:%S",
                )
            )
            self.logger.addHandler(handler)

    def log_event(self, actor: str, action: str, resource: str, outcome: str, **metadata: Any) -> None:
        payload: Dict[str, Any] = {
            "actor": actor,
            "action": action,
            "resource": resource,
            "outcome": outcome,
        }
        if metadata:
            payload["meta"] = metadata

        self.logger.info(json.dumps(payload, default=str))

    def close(self) -> None:
        for handler in list(self.logger.handlers):
            handler.close()
            self.logger.removeHandler(handler)
