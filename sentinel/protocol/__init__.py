"""
Push-channel protocol.

Inbound progress lines are decoded into one tagged variant (`ProgressEvent`) regardless of whether the
backend sent a plain text line or a typed JSON envelope:
- INFO: anything that is not one of the kinds below (kept verbatim in the event log)
- SERVER_STATUS: a per-server line, `[name] status text`
- RUN_COMPLETE: the run terminator
- ERROR: an untagged failure line
"""

from sentinel.protocol.parser import EventKind, ProgressEvent, parse_progress_line

__all__ = ["EventKind", "ProgressEvent", "parse_progress_line"]
