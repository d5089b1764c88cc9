"""
Logging setup and the structured activity log.

Application modules log through `logging.getLogger(__name__)`. Auditable
actions (user, group, permission, token and settings changes) additionally
go through `log_activity`, which writes one JSON object per line to the
`usergate.activity` logger. The file handler rotates daily and keeps
`log_retention_days` files, so the admin log viewer can read them back.
"""

from __future__ import annotations

import json
import logging
import logging.handlers
import re
from pathlib import Path
from typing import Any, TYPE_CHECKING

from usergate.core.utils import utc_now

if TYPE_CHECKING:
    from usergate.config import Settings

ACTIVITY_LOGGER = "usergate.activity"
ACTIVITY_FILE = "app.log"

_LINE_FORMAT = "[%(asctime)s] %(levelname)s: %(message)s"
_LINE_PATTERN = re.compile(r"^\[(.*?)\] (\w+): (.+)$")

activity_logger = logging.getLogger(ACTIVITY_LOGGER)


def configure_logging(settings: Settings) -> None:
    """Install the console handler and the rotating activity-file handler."""
    root = logging.getLogger()
    root.setLevel(settings.log_level.upper())
    
    formatter = logging.Formatter(_LINE_FORMAT)
    
    if not any(getattr(h, "_usergate", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console._usergate = True
        root.addHandler(console)
    
    log_dir = Path(settings.log_dir)
    log_file = (log_dir / ACTIVITY_FILE).resolve()
    
    for handler in list(activity_logger.handlers):
        if not getattr(handler, "_usergate", False):
            continue
        if Path(handler.baseFilename) == log_file:
            return
        # Log directory changed (new app instance): re-point the file handler
        activity_logger.removeHandler(handler)
        handler.close()
    
    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = logging.handlers.TimedRotatingFileHandler(
        log_file,
        when="midnight",
        backupCount=settings.log_retention_days,
        encoding="utf-8",
        utc=True,
    )
    file_handler.setFormatter(formatter)
    file_handler._usergate = True
    activity_logger.addHandler(file_handler)


# =============================================================================
# Activity log
# =============================================================================


def log_activity(activity: str, **data: Any) -> None:
    """Log an auditable action as a single JSON line."""
    payload = {
        "activity": activity,
        "timestamp": utc_now().isoformat(),
        **data,
    }
    activity_logger.info(json.dumps(payload, default=str))


def log_user_event(action: str, user_id: int, username: str, by: str | None = None) -> None:
    log_activity(f"user.{action}", userId=user_id, username=username, by=by or "system")


def log_group_event(
    action: str,
    group_id: int,
    group_name: str,
    by: str,
    **extra: Any,
) -> None:
    log_activity(f"group.{action}", groupId=group_id, groupName=group_name, by=by, **extra)


def log_permission_event(
    action: str,
    group_id: int,
    group_name: str,
    permission: str,
    by: str,
) -> None:
    log_activity(
        f"permission.{action}",
        groupId=group_id,
        groupName=group_name,
        permission=permission,
        by=by,
    )


def log_settings_event(setting: str, old_value: Any, new_value: Any, by: str) -> None:
    log_activity("settings.changed", setting=setting, oldValue=old_value, newValue=new_value, by=by)


def log_token_event(action: str, token_id: int, token_name: str, user_id: int, username: str) -> None:
    log_activity(
        f"token.{action}",
        tokenId=token_id,
        tokenName=token_name,
        userId=user_id,
        username=username,
    )


# =============================================================================
# Reading the activity log back
# =============================================================================


def read_activity_log(
    log_dir: str | Path,
    search: str = "",
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[dict[str, Any]], int]:
    """
    Parse activity entries from the log directory, newest first.
    
    Returns (page, total). Lines that are not activity JSON are skipped.
    """
    log_path = Path(log_dir)
    if not log_path.exists():
        return [], 0
    
    search = search.lower()
    entries: list[dict[str, Any]] = []
    
    for path in sorted(log_path.glob(f"{ACTIVITY_FILE}*"), reverse=True):
        if path.suffix == ".gz":
            continue
        for line in path.read_text(encoding="utf-8").splitlines():
            match = _LINE_PATTERN.match(line.strip())
            if not match:
                continue
            logged_at, level, body = match.groups()
            try:
                record = json.loads(body)
            except json.JSONDecodeError:
                continue
            if not isinstance(record, dict) or "activity" not in record:
                continue
            if search and search not in json.dumps(record).lower():
                continue
            
            activity = record.pop("activity")
            timestamp = record.pop("timestamp", logged_at)
            entries.append({
                "timestamp": timestamp,
                "level": level,
                "activity": activity,
                "data": record,
            })
    
    entries.sort(key=lambda e: e["timestamp"], reverse=True)
    return entries[offset:offset + limit], len(entries)
