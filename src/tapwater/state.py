"""Persisting planner state between runs."""

import logging
from datetime import datetime
from pathlib import Path

import yaml

from . import db
from .models import PlannerState, ScheduledSession, SessionKind, parse_instant

_LOGGER = logging.getLogger(__name__)


def load_state(key: str, db_path: Path | None = None) -> PlannerState:
    """Load the previous run's state.

    A missing or unreadable blob is not an error: it means no desinfection has
    been recorded and there is no previous plan.
    """
    text = db.get_blob(key, db_path)
    if text is None:
        _LOGGER.info("No previous state stored under '%s'", key)
        return PlannerState()

    try:
        data = yaml.safe_load(text) or {}
        state = PlannerState.from_dict(data)
    except (yaml.YAMLError, AttributeError, KeyError, TypeError, ValueError) as e:
        _LOGGER.warning("Ignoring unreadable state under '%s': %s", key, e)
        return PlannerState()

    _LOGGER.info("Read previous state from '%s'", key)
    return state


def dump_state(state: PlannerState) -> str:
    return yaml.safe_dump(state.to_dict(), sort_keys=True)


def save_state(state: PlannerState, key: str, db_path: Path | None = None) -> None:
    """Overwrite the stored state."""
    db.put_blob(key, dump_state(state), db_path)
    _LOGGER.info("Stored state under '%s'", key)


def reset_state(key: str, db_path: Path | None = None) -> bool:
    return db.delete_blob(key, db_path)


def record_sessions(
    results: list[tuple[ScheduledSession, bool]],
    planned_at: datetime,
    db_path: Path | None = None,
) -> int:
    """Append executed sessions to the history table. Returns count written."""
    db.init_db(db_path)
    with db.get_connection(db_path) as conn:
        for session, succeeded in results:
            conn.execute(
                """INSERT INTO session_history
                   (kind, start_time, end_time, average_price, succeeded, planned_at)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    session.kind.value,
                    session.start.isoformat(),
                    session.end.isoformat(),
                    session.average_price,
                    1 if succeeded else 0,
                    planned_at.isoformat(),
                ),
            )
        conn.commit()
    return len(results)


def get_history(limit: int = 20, db_path: Path | None = None) -> list[dict]:
    """Most recent sessions first."""
    db.init_db(db_path)
    with db.get_connection(db_path) as conn:
        rows = conn.execute(
            """SELECT kind, start_time, end_time, average_price, succeeded, planned_at
               FROM session_history
               ORDER BY start_time DESC, id DESC
               LIMIT ?""",
            (limit,),
        ).fetchall()

    return [
        {
            "kind": SessionKind(row["kind"]),
            "start": parse_instant(row["start_time"]),
            "end": parse_instant(row["end_time"]),
            "average_price": row["average_price"],
            "succeeded": bool(row["succeeded"]),
            "planned_at": parse_instant(row["planned_at"]),
        }
        for row in rows
    ]
