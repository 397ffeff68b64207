import json
import sys
from datetime import datetime, timezone
from typing import Optional


def json_log(level: str, event: str, exc: Optional[BaseException] = None, **fields):
    """
    One JSON object per line on stderr.

    Passing `exc` records its message and class name, so PosError subclasses
    (NetworkFailure, NotFound, ...) can be told apart in the log stream.
    """
    rec = {"ts": datetime.now(timezone.utc).isoformat(), "level": level, "event": event, "app": "bookpos"}
    if exc is not None:
        rec["error"] = str(exc)
        rec["error_type"] = type(exc).__name__
        status = getattr(exc, "status", None)
        if status:
            rec["upstream_status"] = status
    rec.update(fields)
    print(json.dumps(rec, default=str), file=sys.stderr)
