"""PostgreSQL adapter for the event store."""
from __future__ import annotations

from typing import Optional
from uuid import uuid4

from ..billing.repository import PostgresRepository
from .models import EventDraft, EventRecord


def _row_to_event(row: dict) -> EventRecord:
    club_id = row.get("club_id")
    return EventRecord(
        id=str(row["id"]),
        owner_id=str(row["owner_id"]),
        title=row["title"],
        description=row.get("description"),
        club_id=str(club_id) if club_id is not None else None,
        max_participants=row.get("max_participants"),
        is_paid=bool(row.get("is_paid")),
        starts_at=row.get("starts_at"),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class PostgresEventStore(PostgresRepository):
    """Writes the event fields used by publishing to the ``events`` table."""

    def create_event(self, owner_id: str, draft: EventDraft) -> EventRecord:
        with self._cursor() as cursor:
            cursor.execute(
                """
                INSERT INTO events (
                    id,
                    owner_id,
                    title,
                    description,
                    club_id,
                    max_participants,
                    is_paid,
                    starts_at
                )
                VALUES (%(id)s, %(owner_id)s, %(title)s, %(description)s, %(club_id)s,
                        %(max_participants)s, %(is_paid)s, %(starts_at)s)
                RETURNING *
                """,
                {
                    "id": str(uuid4()),
                    "owner_id": owner_id,
                    **draft.model_dump(),
                },
            )
            row = cursor.fetchone()
            if not row:
                raise RuntimeError("Failed to persist event")
            return _row_to_event(row)

    def update_event(self, event_id: str, draft: EventDraft) -> EventRecord:
        with self._cursor() as cursor:
            cursor.execute(
                """
                UPDATE events
                SET title = %(title)s,
                    description = %(description)s,
                    club_id = %(club_id)s,
                    max_participants = %(max_participants)s,
                    is_paid = %(is_paid)s,
                    starts_at = %(starts_at)s,
                    updated_at = NOW()
                WHERE id = %(id)s
                RETURNING *
                """,
                {"id": event_id, **draft.model_dump()},
            )
            row = cursor.fetchone()
            if not row:
                raise LookupError("Event not found")
            return _row_to_event(row)

    def delete_event(self, event_id: str) -> None:
        with self._cursor() as cursor:
            cursor.execute("DELETE FROM events WHERE id = %s", (event_id,))

    def get_event(self, event_id: str) -> Optional[EventRecord]:
        with self._cursor() as cursor:
            cursor.execute(
                """
                SELECT *
                FROM events
                WHERE id = %s
                LIMIT 1
                """,
                (event_id,),
            )
            row = cursor.fetchone()
            return _row_to_event(row) if row else None
