"""SQLite-backed lead store.

The store is the single owner of lead records. Every mutation runs inside
one short transaction under a process-wide lock, so a status change and its
accompanying field writes are never observed half-applied. Callers get
frozen ``Lead`` snapshots back and must re-read through the store before
acting on a lead again.
"""

import logging
import sqlite3
import threading
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from leadcall.errors import InvalidTransitionError, NotFoundError
from leadcall.lead import Lead
from leadcall.states import LeadStatus, can_transition
from leadcall.validation import validate_campaign_type, validate_lead_fields

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS leads (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    phone TEXT NOT NULL,
    email TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending'
        CHECK (status IN ('pending', 'calling', 'completed', 'rejected')),
    provider_call_id TEXT,
    feedback TEXT,
    campaign_type TEXT,
    created_at TEXT NOT NULL,
    called_at TEXT
)
"""

_COLUMNS = (
    "id, name, phone, email, status, provider_call_id, feedback, "
    "campaign_type, created_at, called_at"
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    return datetime.fromisoformat(value)


def _row_to_lead(row: sqlite3.Row) -> Lead:
    return Lead(
        id=row["id"],
        name=row["name"],
        phone=row["phone"],
        email=row["email"],
        status=LeadStatus(row["status"]),
        provider_call_id=row["provider_call_id"],
        feedback=row["feedback"],
        campaign_type=row["campaign_type"],
        created_at=_parse_ts(row["created_at"]),
        called_at=_parse_ts(row["called_at"]),
    )


class LeadStore:
    def __init__(self, path: str = ":memory:", clock: Callable[[], datetime] = _utcnow):
        self.path = path
        self._clock = clock
        self._lock = threading.Lock()
        # The FastAPI test client and the CLI touch the store from worker
        # threads; the lock serializes access to the single connection.
        self._conn = sqlite3.connect(path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        with self._lock, self._conn:
            self._conn.execute(SCHEMA)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def now(self) -> datetime:
        return self._clock()

    # --- reads ---

    def _fetch(self, lead_id: int) -> Lead:
        row = self._conn.execute(
            f"SELECT {_COLUMNS} FROM leads WHERE id = ?", (lead_id,)
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Lead {lead_id} not found")
        return _row_to_lead(row)

    def get(self, lead_id: int) -> Lead:
        with self._lock:
            return self._fetch(lead_id)

    def list_leads(self, campaign_type: str | None = None) -> list[Lead]:
        """All leads in insertion order. Display ordering is the caller's job."""
        query = f"SELECT {_COLUMNS} FROM leads"
        params: tuple = ()
        if campaign_type:
            query += " WHERE campaign_type = ?"
            params = (campaign_type,)
        query += " ORDER BY id"
        with self._lock:
            rows = self._conn.execute(query, params).fetchall()
        return [_row_to_lead(r) for r in rows]

    def list_by_status(self, status: LeadStatus) -> list[Lead]:
        with self._lock:
            rows = self._conn.execute(
                f"SELECT {_COLUMNS} FROM leads WHERE status = ? ORDER BY id",
                (status.value,),
            ).fetchall()
        return [_row_to_lead(r) for r in rows]

    def counts(self, campaign_type: str | None = None) -> dict:
        query = (
            "SELECT COUNT(*) AS total, "
            "COALESCE(SUM(CASE WHEN status = 'pending' THEN 1 ELSE 0 END), 0) AS pending "
            "FROM leads"
        )
        params: tuple = ()
        if campaign_type:
            query += " WHERE campaign_type = ?"
            params = (campaign_type,)
        with self._lock:
            row = self._conn.execute(query, params).fetchone()
        return {"total": row["total"], "pending": row["pending"]}

    # --- writes ---

    def create(
        self,
        name: str,
        phone: str,
        email: str,
        campaign_type: str | None = None,
    ) -> Lead:
        """Validate and insert a new lead in ``pending``.

        Raises ValidationError before touching the database if any field is
        missing or malformed.
        """
        name, phone, email = validate_lead_fields(name, phone, email)
        campaign_type = validate_campaign_type(campaign_type)
        with self._lock, self._conn:
            cur = self._conn.execute(
                "INSERT INTO leads (name, phone, email, status, campaign_type, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (name, phone, email, LeadStatus.PENDING.value, campaign_type,
                 self.now().isoformat()),
            )
            lead = self._fetch(cur.lastrowid)
        logger.info("Created lead %d (%s)", lead.id, lead.name)
        return lead

    def create_many(
        self,
        rows: Iterable[tuple[str, str, str]],
        campaign_type: str | None = None,
    ) -> list[Lead]:
        """Insert several already-validated leads in one transaction."""
        campaign_type = validate_campaign_type(campaign_type)
        created_ids = []
        with self._lock, self._conn:
            for name, phone, email in rows:
                cur = self._conn.execute(
                    "INSERT INTO leads (name, phone, email, status, campaign_type, created_at) "
                    "VALUES (?, ?, ?, ?, ?, ?)",
                    (name, phone, email, LeadStatus.PENDING.value, campaign_type,
                     self.now().isoformat()),
                )
                created_ids.append(cur.lastrowid)
            leads = [self._fetch(lead_id) for lead_id in created_ids]
        logger.info("Bulk created %d leads", len(leads))
        return leads

    def update_status(
        self,
        lead_id: int,
        status: LeadStatus,
        *,
        provider_call_id: str | None = None,
        called_at: datetime | None = None,
        feedback: str | None = None,
    ) -> Lead:
        """Apply a lifecycle transition and its field writes atomically.

        Re-applying the terminal status a lead already holds is a no-op and
        never overwrites stored feedback. Any other transition not allowed by
        the lifecycle raises InvalidTransitionError.
        """
        with self._lock, self._conn:
            current = self._fetch(lead_id)

            if current.status.is_terminal and status == current.status:
                if feedback is not None and current.feedback not in (None, feedback):
                    logger.warning(
                        "Lead %d already %s with feedback; ignoring new feedback",
                        lead_id, current.status.value,
                    )
                return current

            if not can_transition(current.status, status):
                raise InvalidTransitionError(
                    f"Lead {lead_id} cannot move from {current.status.value} to {status.value}"
                )

            cur = self._conn.execute(
                "UPDATE leads SET status = ?, "
                "provider_call_id = COALESCE(?, provider_call_id), "
                "called_at = COALESCE(?, called_at), "
                "feedback = COALESCE(feedback, ?) "
                "WHERE id = ? AND status = ?",
                (
                    status.value,
                    provider_call_id,
                    called_at.isoformat() if called_at else None,
                    feedback,
                    lead_id,
                    current.status.value,
                ),
            )
            if cur.rowcount != 1:
                raise InvalidTransitionError(
                    f"Lead {lead_id} changed status concurrently"
                )
            updated = self._fetch(lead_id)

        logger.info(
            "Lead %d: %s -> %s", lead_id, current.status.value, updated.status.value
        )
        return updated

    def delete(self, lead_id: int) -> None:
        with self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM leads WHERE id = ?", (lead_id,))
            if cur.rowcount == 0:
                raise NotFoundError(f"Lead {lead_id} not found")
        logger.info("Deleted lead %d", lead_id)
