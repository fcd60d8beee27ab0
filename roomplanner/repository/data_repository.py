"""Repository layer responsible for all database access."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, timedelta
from pathlib import Path
from typing import Any, Iterable, Iterator, Mapping, Optional, Sequence

from roomplanner.domain.adapters import build_record, record_to_activity
from roomplanner.domain.models import Activity, ActivityKind, ActivityStatus, Resource
from roomplanner.utils.config import Settings, get_settings
from roomplanner.utils.logger import get_logger


logger = get_logger(__name__)


class DataRepository:
    """Encapsulates SQLite access so the scheduling engine stays storage-agnostic.

    Bookings are stored as the raw record of their kind; every read projects
    them into fresh :class:`Activity` values through the kind adapters.
    """

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self._settings = settings or get_settings()
        self._db_path = Path(self._settings.database_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def database_path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        connection = sqlite3.connect(self._db_path, timeout=30.0)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        return connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction that holds the database write lock.

        ``BEGIN IMMEDIATE`` makes a read-check-write sequence serializable
        against other writers for its whole duration.
        """
        connection = sqlite3.connect(self._db_path, timeout=30.0, isolation_level=None)
        connection.row_factory = sqlite3.Row
        connection.execute("PRAGMA foreign_keys = ON;")
        try:
            connection.execute("BEGIN IMMEDIATE;")
        except sqlite3.Error:
            connection.close()
            raise
        try:
            yield connection
            connection.execute("COMMIT;")
        except BaseException:
            connection.execute("ROLLBACK;")
            raise
        finally:
            connection.close()

    @contextmanager
    def _reader(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
            return
        with self._connect() as own:
            yield own

    def initialize_database(self) -> None:
        """Create all persistence artifacts before API startup."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Rooms (
                        id TEXT PRIMARY KEY,
                        name TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'AVAILABLE',
                        capacity INTEGER CHECK (capacity IS NULL OR capacity > 0),
                        area REAL,
                        room_type TEXT,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE TABLE IF NOT EXISTS Bookings (
                        id TEXT PRIMARY KEY,
                        kind TEXT NOT NULL
                            CHECK (kind IN ('class', 'rental', 'event', 'reservation')),
                        room_id TEXT NOT NULL,
                        date TEXT NOT NULL,
                        start_time TEXT NOT NULL,
                        end_time TEXT NOT NULL,
                        status TEXT NOT NULL DEFAULT 'PLANNED',
                        record TEXT NOT NULL,
                        created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
                        FOREIGN KEY (room_id) REFERENCES Rooms(id)
                    );
                    """
                )

                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_room_date
                    ON Bookings(room_id, date);
                    """
                )
                cursor.execute(
                    """
                    CREATE INDEX IF NOT EXISTS idx_bookings_date
                    ON Bookings(date);
                    """
                )
                conn.commit()
            logger.info("Database initialized at %s", self._db_path)
        except sqlite3.Error as exc:
            raise RuntimeError(f"Database initialization failed: {exc}") from exc

    def seed_demo_data(self, today: date) -> None:
        """Seed a small venue with bookings of every kind, only when empty."""
        try:
            with self._connect() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT COUNT(*) AS count FROM Rooms;")
                if int(cursor.fetchone()["count"]) > 0:
                    logger.info("Demo data already present; skipping seed")
                    return

                rooms = [
                    Resource("hall-a", "Hall A", capacity=80, area=120.0, resource_type="HALL"),
                    Resource("studio-1", "Studio 1", capacity=20, area=45.0, resource_type="STUDIO"),
                    Resource("studio-2", "Studio 2", capacity=15, area=35.0, resource_type="STUDIO"),
                    Resource("room-101", "Room 101", capacity=10, area=18.0, resource_type="CLASSROOM"),
                    Resource(
                        "room-102",
                        "Room 102",
                        status="MAINTENANCE",
                        capacity=10,
                        area=18.0,
                        resource_type="CLASSROOM",
                    ),
                ]
                for room in rooms:
                    self.create_resource(room, conn=conn)

                day = today.isoformat()
                tomorrow = (today + timedelta(days=1)).isoformat()
                seed_bookings: list[tuple[ActivityKind, dict[str, Any]]] = [
                    (
                        ActivityKind.CLASS,
                        {
                            "id": "seed-class-1",
                            "room_id": "studio-1",
                            "date": day,
                            "start_time": "1970-01-01T10:00:00.000Z",
                            "end_time": "1970-01-01T11:30:00.000Z",
                            "status": "PLANNED",
                            "type": "GROUP_CLASS",
                            "group": {"name": "Ballet Juniors", "studio": {"name": "Dance"}},
                            "teacher": {"first_name": "Anna", "last_name": "Ivanova"},
                        },
                    ),
                    (
                        ActivityKind.RENTAL,
                        build_record(
                            ActivityKind.RENTAL,
                            record_id="seed-rental-1",
                            resource_id="hall-a",
                            date=day,
                            start_time="12:00",
                            end_time="15:00",
                            title="Photo shoot",
                            subtitle="Bright Lens LLC",
                        ),
                    ),
                    (
                        ActivityKind.EVENT,
                        build_record(
                            ActivityKind.EVENT,
                            record_id="seed-event-1",
                            resource_id="hall-a",
                            date=day,
                            start_time="18:00:00",
                            end_time="21:00:00",
                            title="Spring Concert",
                            subtitle="Concert",
                        ),
                    ),
                    (
                        ActivityKind.RESERVATION,
                        build_record(
                            ActivityKind.RESERVATION,
                            record_id="seed-reservation-1",
                            resource_id="studio-2",
                            date=tomorrow,
                            start_time="09:00",
                            end_time="10:00",
                            subtitle="Front desk",
                        ),
                    ),
                ]
                for kind, record in seed_bookings:
                    self.insert_booking(kind, record, conn=conn)
                conn.commit()
            logger.info("Demo seed completed with %s rooms and %s bookings", len(rooms), len(seed_bookings))
        except sqlite3.Error as exc:
            raise RuntimeError(f"Demo data seeding failed: {exc}") from exc

    def create_resource(self, resource: Resource, conn: Optional[sqlite3.Connection] = None) -> None:
        with self._reader(conn) as active:
            active.execute(
                """
                INSERT INTO Rooms (id, name, status, capacity, area, room_type)
                VALUES (?, ?, ?, ?, ?, ?);
                """,
                (
                    resource.resource_id,
                    resource.name,
                    resource.status,
                    resource.capacity,
                    resource.area,
                    resource.resource_type,
                ),
            )
            if conn is None:
                active.commit()

    def list_resources(self) -> list[Resource]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                SELECT id, name, status, capacity, area, room_type
                FROM Rooms
                ORDER BY name ASC;
                """
            )
            return [self._row_to_resource(row) for row in cursor.fetchall()]

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT id, name, status, capacity, area, room_type FROM Rooms WHERE id = ?;",
                (resource_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_resource(row)

    def insert_booking(
        self,
        kind: ActivityKind | str,
        record: Mapping[str, Any],
        conn: Optional[sqlite3.Connection] = None,
    ) -> Activity:
        """Store a raw booking record and return its projection."""
        activity = record_to_activity(kind, record)
        with self._reader(conn) as active:
            active.execute(
                """
                INSERT INTO Bookings (id, kind, room_id, date, start_time, end_time, status, record)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                self._booking_row(activity, record),
            )
            if conn is None:
                active.commit()
        return activity

    def insert_bookings(
        self,
        bookings: Iterable[tuple[ActivityKind | str, Mapping[str, Any]]],
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Activity]:
        """Store several records with a single statement batch."""
        rows = []
        activities = []
        for kind, record in bookings:
            activity = record_to_activity(kind, record)
            activities.append(activity)
            rows.append(self._booking_row(activity, record))
        if not rows:
            return []
        with self._reader(conn) as active:
            active.executemany(
                """
                INSERT INTO Bookings (id, kind, room_id, date, start_time, end_time, status, record)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?);
                """,
                rows,
            )
            if conn is None:
                active.commit()
        return activities

    def get_activity(
        self,
        activity_id: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Optional[Activity]:
        with self._reader(conn) as active:
            cursor = active.execute(
                "SELECT kind, record FROM Bookings WHERE id = ?;",
                (activity_id,),
            )
            row = cursor.fetchone()
            if row is None:
                return None
            return self._row_to_activity(row)

    def list_activities(
        self,
        target_date: str,
        resource_ids: Optional[Sequence[str]] = None,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Activity]:
        """Return every booking of every kind on ``target_date``."""
        query = "SELECT kind, record FROM Bookings WHERE date = ?"
        params: list[Any] = [target_date]
        if resource_ids:
            placeholders = ",".join("?" for _ in resource_ids)
            query += f" AND room_id IN ({placeholders})"
            params.extend(resource_ids)
        query += " ORDER BY room_id ASC, start_time ASC, id ASC;"
        with self._reader(conn) as active:
            cursor = active.execute(query, tuple(params))
            return [self._row_to_activity(row) for row in cursor.fetchall()]

    def list_resource_activities(
        self,
        resource_id: str,
        dates: Sequence[str],
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Activity]:
        if not dates:
            return []
        placeholders = ",".join("?" for _ in dates)
        with self._reader(conn) as active:
            cursor = active.execute(
                f"""
                SELECT kind, record
                FROM Bookings
                WHERE room_id = ? AND date IN ({placeholders})
                ORDER BY date ASC, start_time ASC, id ASC;
                """,
                (resource_id, *dates),
            )
            return [self._row_to_activity(row) for row in cursor.fetchall()]

    def list_resource_activities_between(
        self,
        resource_id: str,
        date_from: str,
        date_to: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> list[Activity]:
        with self._reader(conn) as active:
            cursor = active.execute(
                """
                SELECT kind, record
                FROM Bookings
                WHERE room_id = ? AND date >= ? AND date <= ?
                ORDER BY date ASC, start_time ASC, id ASC;
                """,
                (resource_id, date_from, date_to),
            )
            return [self._row_to_activity(row) for row in cursor.fetchall()]

    def update_booking_placement(
        self,
        activity_id: str,
        *,
        resource_id: str,
        target_date: str,
        start_time: str,
        end_time: str,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Activity:
        """Move a stored booking, keeping its kind-specific fields intact."""
        return self._rewrite_record(
            activity_id,
            {
                "room_id": resource_id,
                "date": target_date,
                "start_time": start_time,
                "end_time": end_time,
            },
            conn=conn,
        )

    def update_booking_status(
        self,
        activity_id: str,
        status: ActivityStatus,
        conn: Optional[sqlite3.Connection] = None,
    ) -> Activity:
        return self._rewrite_record(activity_id, {"status": status.value}, conn=conn)

    def count_bookings(self) -> int:
        with self._connect() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT COUNT(*) AS count FROM Bookings;")
            return int(cursor.fetchone()["count"])

    def _rewrite_record(
        self,
        activity_id: str,
        changes: Mapping[str, Any],
        conn: Optional[sqlite3.Connection] = None,
    ) -> Activity:
        with self._reader(conn) as active:
            row = active.execute(
                "SELECT kind, record FROM Bookings WHERE id = ?;",
                (activity_id,),
            ).fetchone()
            if row is None:
                raise KeyError(activity_id)
            record = json.loads(row["record"])
            record.update(changes)
            activity = record_to_activity(row["kind"], record)
            active.execute(
                """
                UPDATE Bookings
                SET room_id = ?, date = ?, start_time = ?, end_time = ?, status = ?, record = ?
                WHERE id = ?;
                """,
                (
                    activity.resource_id,
                    activity.date,
                    activity.start_time,
                    activity.end_time,
                    activity.status.value,
                    json.dumps(record, default=str),
                    activity_id,
                ),
            )
            if conn is None:
                active.commit()
        return activity

    @staticmethod
    def _booking_row(activity: Activity, record: Mapping[str, Any]) -> tuple[Any, ...]:
        return (
            activity.activity_id,
            activity.kind.value,
            activity.resource_id,
            activity.date,
            activity.start_time,
            activity.end_time,
            activity.status.value,
            json.dumps(dict(record), default=str),
        )

    @staticmethod
    def _row_to_activity(row: sqlite3.Row) -> Activity:
        return record_to_activity(row["kind"], json.loads(row["record"]))

    @staticmethod
    def _row_to_resource(row: sqlite3.Row) -> Resource:
        return Resource(
            resource_id=str(row["id"]),
            name=str(row["name"]),
            status=str(row["status"]),
            capacity=int(row["capacity"]) if row["capacity"] is not None else None,
            area=float(row["area"]) if row["area"] is not None else None,
            resource_type=str(row["room_type"]) if row["room_type"] is not None else None,
        )
