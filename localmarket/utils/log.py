"""
Structured event lines for discovery flows
"""
import json
import logging
from datetime import datetime, timezone
from typing import Any


def log_discovery_event(logger: logging.Logger, step: str, ok: bool, **extra: Any):
    """
    Emit one compact JSON line, e.g.
    {"at":"discovery","step":"get_home_products","ok":true,"ts":"...","extra":{"count":12}}

    Failed steps are logged at WARNING.
    """
    event = {
        "at": "discovery",
        "step": step,
        "ok": ok,
        "ts": datetime.now(timezone.utc).isoformat(),
    }
    if extra:
        event["extra"] = extra

    logger.log(logging.INFO if ok else logging.WARNING, json.dumps(event, separators=(',', ':'), default=str))
