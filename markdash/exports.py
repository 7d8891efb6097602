"""
Markdown and CSV renderings of a board and its activity logs.
"""

from __future__ import annotations

import csv
import io
import re
from datetime import datetime
from typing import Iterable, List

from markdash.models import BoardRecord, LogRecord, utc_now

ACTION_LINES = {
    "check": "- ✓ **{time}** - Completed: {task}",
    "reset": "- 🔄 **{time}** - Board reset",
    "done": "- ✅ **{time}** - Board completed",
}
CSV_HEADER = ["Date", "Time", "Action Type", "Task", "Board"]


def safe_filename(title: str) -> str:
    return re.sub(r"[^a-z0-9]", "_", title, flags=re.IGNORECASE)


def _parse_iso(value: str) -> datetime | None:
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (TypeError, ValueError):
        return None


def _format_time(value: str) -> str:
    parsed = _parse_iso(value)
    return parsed.strftime("%H:%M:%S") if parsed else value


def _format_date(value: str) -> str:
    parsed = _parse_iso(value)
    return parsed.strftime("%Y-%m-%d") if parsed else value


def newest_first(logs: Iterable[LogRecord]) -> List[LogRecord]:
    return sorted(logs, key=lambda log: log.date, reverse=True)


def board_to_markdown(board: BoardRecord, logs: Iterable[LogRecord]) -> str:
    lines = []
    lines.append(f"# {board.title}")
    lines.append("")
    lines.append(f"**Created:** {_format_date(board.created_at)}")
    lines.append(f"**Schedule:** {board.schedule}")
    lines.append(f"**Reset Time:** {board.reset_time}")
    lines.append("")
    lines.append("---")
    lines.append("")
    lines.append("## Board Content")
    lines.append("")
    lines.append(board.markdown_body)
    lines.append("")
    lines.append("---")
    lines.append("")
    lines.append("## Activity History")
    lines.append("")

    ordered = newest_first(logs)
    if not ordered:
        lines.append("No activity recorded yet.")
    for log in ordered:
        lines.append(f"### {log.date}")
        lines.append("")
        for action in log.actions:
            if action.type == "check" and not action.task:
                continue
            template = ACTION_LINES.get(action.type)
            if template:
                lines.append(
                    template.format(time=_format_time(action.time), task=action.task)
                )
        lines.append("")

    lines.append("")
    lines.append("---")
    lines.append("")
    exported = utc_now().strftime("%Y-%m-%d %H:%M:%S UTC")
    lines.append(f"*Exported from MarkDash on {exported}*")
    return "\n".join(lines) + "\n"


def board_logs_to_csv(board: BoardRecord, logs: Iterable[LogRecord]) -> str:
    output = io.StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for log in newest_first(logs):
        for action in log.actions:
            writer.writerow(
                [
                    log.date,
                    _format_time(action.time),
                    action.type,
                    action.task or "-",
                    board.title,
                ]
            )
    return output.getvalue()
