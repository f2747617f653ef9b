import json
import logging
import sys

logger = logging.getLogger("llm-orchestrator")
logger.setLevel(logging.INFO)
_handler = logging.StreamHandler(sys.stdout)
_handler.setFormatter(logging.Formatter("%(message)s"))
logger.addHandler(_handler)
logger.propagate = False


def log_event(level: int, message: str, **fields) -> None:
    payload = {"message": message}
    payload.update(fields)
    logger.log(level, json.dumps(payload, separators=(",", ":"), default=str))
