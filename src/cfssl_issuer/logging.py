"""JSON-lines logging for the reconcilers.

Every line carries the resource it is about and the correlation ID of the
reconcile that wrote it. Credential fields never reach the output.
"""

import json
import logging
import sys
from typing import Any

from .utils.context import get_context_dict

REDACTED = "***REDACTED***"
SECRET_LOG_FIELDS = frozenset({"key", "auth_key", "additional_data", "token", "password"})

# HTTP client libraries log every request at DEBUG.
QUIET_LOGGERS = ("urllib3", "kubernetes.client.rest")


def setup_structured_logging(level: str = "INFO") -> None:
    """Send plain-message records to stdout at the given level."""
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), handlers=[handler], force=True)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def redact_secret_fields(fields: dict[str, Any]) -> dict[str, Any]:
    return {name: REDACTED if name in SECRET_LOG_FIELDS else value for name, value in fields.items()}


def log_resource_event(
    logger: logging.Logger,
    controller: str,
    resource_kind: str,
    resource_name: str,
    namespace: str,
    uid: str,
    event: str,
    reason: str,
    message: str,
    level: int = logging.INFO,
    **fields: Any,
) -> None:
    """Write one JSON line about a resource.

    Extra keyword fields are appended after the reconcile context, with
    credential fields masked.
    """
    if not logger.isEnabledFor(level):
        return
    line = {
        "message": message,
        "event": event,
        "reason": reason,
        "controller": controller,
        "resource": resource_kind,
        "name": resource_name,
        "namespace": namespace,
        "uid": uid,
        **get_context_dict(),
        **redact_secret_fields(fields),
    }
    logger.log(level, json.dumps(line, default=str))
