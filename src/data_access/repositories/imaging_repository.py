"""
Imaging Repository - Data access layer for patients, orders, images and audit.

This repository handles all database operations for the imaging workflow.
Every method is a single transaction. Records are only ever inserted;
there are no update or delete operations for orders, images or audit
events.

The repository owns one SQLite connection for its lifetime: opened when
the repository is created, closed by close() at shutdown. A lock guards
the connection so reads never observe a half-committed write.
"""

import sqlite3
import sys
import threading
from pathlib import Path

# Add src to path for imports
_src_path = Path(__file__).parent.parent.parent
if str(_src_path) not in sys.path:
    sys.path.insert(0, str(_src_path))

from domain.entities import AuditEvent, Image, Order, Patient, PendingOrder
from domain.exceptions import (
    AuditAppendError,
    IdentifierCollisionError,
    ReferentialIntegrityError,
)


# Demo patients shown on the ordering screen
DEFAULT_PATIENTS: list[Patient] = [
    Patient(
        patient_id="P1001", mrn="1001", encounter_id="E2001",
        first_name="Alice", last_name="Smith",
        dob="1975-02-15", gender="F", allergies="Penicillin",
    ),
    Patient(
        patient_id="P1002", mrn="1002", encounter_id="E2002",
        first_name="Bob", last_name="Jones",
        dob="1982-07-30", gender="M", allergies="Iodine Contrast",
    ),
    Patient(
        patient_id="P1003", mrn="1003", encounter_id="E2003",
        first_name="Carol", last_name="Lee",
        dob="1990-11-05", gender="F", allergies="",
    ),
]


class ImagingRepository:
    """
    Repository for imaging workflow storage and retrieval.

    Uses SQLite for persistent storage. Referential integrity is
    checked inside the inserting transaction and reported as
    ReferentialIntegrityError rather than a raw sqlite error.
    """

    def __init__(self, db_path: Path | str):
        """
        Initialize repository with database path.

        Args:
            db_path: Path to SQLite database file or ":memory:" for in-memory DB
        """
        if str(db_path) == ":memory:":
            self._db_path = ":memory:"
        else:
            self._db_path = Path(db_path)
        self._lock = threading.RLock()
        self._conn: sqlite3.Connection | None = None
        self.open()

    def open(self) -> None:
        """Open the connection and create tables. No-op when already open."""
        with self._lock:
            if self._conn is not None:
                return

            # Only create parent directory for file-based databases
            if self._db_path != ":memory:":
                Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

            self._conn = sqlite3.connect(self._db_path, check_same_thread=False)
            self._conn.execute("PRAGMA foreign_keys = ON")
            self._ensure_schema()

    def close(self) -> None:
        """Close the connection. Safe to call more than once."""
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None

    @property
    def is_open(self) -> bool:
        """Check if the connection is open."""
        return self._conn is not None

    def __enter__(self) -> "ImagingRepository":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Repository is closed")
        return self._conn

    def _ensure_schema(self) -> None:
        """Create tables and indexes if they don't exist."""
        conn = self._connection()
        with conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS patients (
                    patient_id TEXT PRIMARY KEY,
                    mrn TEXT NOT NULL,
                    encounter_id TEXT,
                    first_name TEXT NOT NULL,
                    last_name TEXT NOT NULL,
                    dob TEXT NOT NULL,
                    gender TEXT NOT NULL,
                    allergies TEXT DEFAULT ''
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS orders (
                    order_id TEXT PRIMARY KEY,
                    patient_id TEXT NOT NULL REFERENCES patients(patient_id),
                    procedure_code TEXT NOT NULL,
                    priority TEXT NOT NULL,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS images (
                    image_id TEXT PRIMARY KEY,
                    order_id TEXT NOT NULL REFERENCES orders(order_id),
                    patient_id TEXT NOT NULL REFERENCES patients(patient_id),
                    file_path TEXT NOT NULL,
                    study_date TEXT NOT NULL,
                    modality TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS audit (
                    event_id INTEGER PRIMARY KEY,
                    time TEXT NOT NULL,
                    event_type TEXT NOT NULL,
                    ref_id TEXT NOT NULL
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_images_order
                ON images(order_id)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_images_patient
                ON images(patient_id, study_date)
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_audit_ref
                ON audit(ref_id)
            """)

    # ------------------------------------------------------------------
    # Patients
    # ------------------------------------------------------------------

    def insert_patient(self, patient: Patient) -> None:
        """
        Insert a patient (seed data only - the workflow never does this).

        Raises:
            IdentifierCollisionError: If the patient id already exists
        """
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    conn.execute(
                        """
                        INSERT INTO patients
                        (patient_id, mrn, encounter_id, first_name, last_name,
                         dob, gender, allergies)
                        VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            patient.patient_id,
                            patient.mrn,
                            patient.encounter_id,
                            patient.first_name,
                            patient.last_name,
                            patient.dob,
                            patient.gender,
                            patient.allergies,
                        )
                    )
            except sqlite3.IntegrityError as e:
                raise IdentifierCollisionError(
                    f"Patient {patient.patient_id} already exists"
                ) from e

    def seed_default_patients(self) -> int:
        """
        Insert the demo patients if the patient table is empty.

        Returns:
            Number of patients inserted
        """
        if self.count("patients") > 0:
            return 0
        for patient in DEFAULT_PATIENTS:
            self.insert_patient(patient)
        return len(DEFAULT_PATIENTS)

    def find_patient(self, patient_id: str) -> Patient | None:
        """
        Find a patient by id.

        Returns:
            Patient if found, None otherwise
        """
        with self._lock:
            row = self._connection().execute(
                """
                SELECT patient_id, mrn, encounter_id, first_name, last_name,
                       dob, gender, allergies
                FROM patients
                WHERE patient_id = ?
                """,
                (patient_id,)
            ).fetchone()
        return self._row_to_patient(row) if row else None

    def query_all_patients(self) -> list[Patient]:
        """
        Get all patients.

        Returns:
            List of patients ordered by last name, then first name
        """
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT patient_id, mrn, encounter_id, first_name, last_name,
                       dob, gender, allergies
                FROM patients
                ORDER BY last_name, first_name
                """
            ).fetchall()
        return [self._row_to_patient(row) for row in rows]

    # ------------------------------------------------------------------
    # Orders and images
    # ------------------------------------------------------------------

    def insert_order(self, order: Order, audit_events: list[AuditEvent] | None = None) -> None:
        """
        Insert a new order, optionally with its first audit events.

        The order row and the audit events commit in one transaction, so
        an order never exists without its creation trail.

        Args:
            order: Order to insert
            audit_events: Events (with ids already assigned) to write alongside

        Raises:
            ReferentialIntegrityError: If the patient does not exist
            IdentifierCollisionError: If the order id is already taken
            AuditAppendError: If the audit events could not be written
        """
        with self._lock:
            conn = self._connection()
            with conn:
                known = conn.execute(
                    "SELECT 1 FROM patients WHERE patient_id = ?",
                    (order.patient_id,)
                ).fetchone()
                if not known:
                    raise ReferentialIntegrityError(
                        f"Order {order.order_id} references unknown patient {order.patient_id}"
                    )
                try:
                    conn.execute(
                        """
                        INSERT INTO orders
                        (order_id, patient_id, procedure_code, priority, created_at)
                        VALUES (?, ?, ?, ?, ?)
                        """,
                        (
                            order.order_id,
                            order.patient_id,
                            order.procedure_code,
                            order.priority,
                            order.created_at,
                        )
                    )
                except sqlite3.IntegrityError as e:
                    raise IdentifierCollisionError(
                        f"Order id {order.order_id} already exists"
                    ) from e
                if audit_events:
                    self._insert_audit_rows(conn, audit_events)

    def find_order(self, order_id: str) -> Order | None:
        """
        Find an order by id.

        Returns:
            Order if found, None otherwise
        """
        with self._lock:
            row = self._connection().execute(
                """
                SELECT order_id, patient_id, procedure_code, priority, created_at
                FROM orders
                WHERE order_id = ?
                """,
                (order_id,)
            ).fetchone()
        return Order(*row) if row else None

    def insert_image(self, image: Image) -> None:
        """
        Insert a captured image.

        Raises:
            ReferentialIntegrityError: If the order does not exist, or belongs
                to a different patient than the image
            IdentifierCollisionError: If the image id is already taken
        """
        with self._lock:
            conn = self._connection()
            try:
                with conn:
                    row = conn.execute(
                        "SELECT patient_id FROM orders WHERE order_id = ?",
                        (image.order_id,)
                    ).fetchone()
                    if not row:
                        raise ReferentialIntegrityError(
                            f"Image {image.image_id} references unknown order {image.order_id}"
                        )
                    if row[0] != image.patient_id:
                        raise ReferentialIntegrityError(
                            f"Image {image.image_id} is for patient {image.patient_id} "
                            f"but order {image.order_id} belongs to {row[0]}"
                        )
                    conn.execute(
                        """
                        INSERT INTO images
                        (image_id, order_id, patient_id, file_path, study_date, modality)
                        VALUES (?, ?, ?, ?, ?, ?)
                        """,
                        (
                            image.image_id,
                            image.order_id,
                            image.patient_id,
                            image.file_path,
                            image.study_date,
                            image.modality,
                        )
                    )
            except sqlite3.IntegrityError as e:
                raise IdentifierCollisionError(
                    f"Image id {image.image_id} already exists"
                ) from e

    def order_has_image(self, order_id: str) -> bool:
        """Check if at least one image was captured for the order."""
        with self._lock:
            row = self._connection().execute(
                "SELECT 1 FROM images WHERE order_id = ? LIMIT 1",
                (order_id,)
            ).fetchone()
        return row is not None

    def query_pending_orders(self) -> list[PendingOrder]:
        """
        Get orders that have no captured image yet.

        Returns:
            Pending orders joined with patient names, newest first
        """
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT o.order_id, o.patient_id,
                       p.first_name || ' ' || p.last_name,
                       o.procedure_code, o.priority, o.created_at
                FROM orders o
                JOIN patients p ON o.patient_id = p.patient_id
                LEFT JOIN images i ON o.order_id = i.order_id
                WHERE i.image_id IS NULL
                ORDER BY o.created_at DESC, o.order_id DESC
                """
            ).fetchall()
        return [PendingOrder(*row) for row in rows]

    def query_images_by_patient(self, patient_id: str) -> list[Image]:
        """
        Get all images captured for a patient.

        Returns:
            Images ordered by study date, oldest first
        """
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT image_id, order_id, patient_id, file_path, study_date, modality
                FROM images
                WHERE patient_id = ?
                ORDER BY study_date ASC, image_id ASC
                """,
                (patient_id,)
            ).fetchall()
        return [Image(*row) for row in rows]

    # ------------------------------------------------------------------
    # Audit
    # ------------------------------------------------------------------

    def append_audit(self, event: AuditEvent) -> None:
        """
        Persist a single audit event with the id the audit log assigned.

        Raises:
            AuditAppendError: If the event could not be written
        """
        self.append_audit_batch([event])

    def append_audit_batch(self, events: list[AuditEvent]) -> None:
        """
        Persist several audit events in one transaction.

        Either every event is written or none is.

        Raises:
            AuditAppendError: If the batch could not be written
        """
        with self._lock:
            try:
                conn = self._connection()
            except RuntimeError as e:
                raise AuditAppendError(f"Could not append audit events: {e}") from e
            with conn:
                self._insert_audit_rows(conn, events)

    @staticmethod
    def _insert_audit_rows(conn: sqlite3.Connection, events: list[AuditEvent]) -> None:
        """Insert audit rows inside the caller's transaction."""
        try:
            conn.executemany(
                """
                INSERT INTO audit (event_id, time, event_type, ref_id)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (e.event_id, e.timestamp, e.event_type, e.ref_id)
                    for e in events
                ]
            )
        except sqlite3.Error as e:
            raise AuditAppendError(f"Could not append audit events: {e}") from e

    def max_audit_event_id(self) -> int:
        """Highest persisted event id, or 0 for an empty log."""
        with self._lock:
            row = self._connection().execute(
                "SELECT COALESCE(MAX(event_id), 0) FROM audit"
            ).fetchone()
        return row[0]

    def query_audit_tail(self, limit: int = 100) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Args:
            limit: Maximum number of events to return

        Returns:
            Up to `limit` newest events, in ascending event id order
        """
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT event_id, time, event_type, ref_id FROM (
                    SELECT event_id, time, event_type, ref_id
                    FROM audit
                    ORDER BY event_id DESC
                    LIMIT ?
                )
                ORDER BY event_id ASC
                """,
                (limit,)
            ).fetchall()
        return [AuditEvent(*row) for row in rows]

    def query_audit_by_ref(self, ref_id: str) -> list[AuditEvent]:
        """
        Get every audit event recorded against a reference id.

        Returns:
            Events in ascending event id order
        """
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT event_id, time, event_type, ref_id
                FROM audit
                WHERE ref_id = ?
                ORDER BY event_id ASC
                """,
                (ref_id,)
            ).fetchall()
        return [AuditEvent(*row) for row in rows]

    def query_audit_by_type(self, event_type: str) -> list[AuditEvent]:
        """
        Get every audit event of one kind.

        Returns:
            Events in ascending event id order
        """
        with self._lock:
            rows = self._connection().execute(
                """
                SELECT event_id, time, event_type, ref_id
                FROM audit
                WHERE event_type = ?
                ORDER BY event_id ASC
                """,
                (event_type,)
            ).fetchall()
        return [AuditEvent(*row) for row in rows]

    def query_order_history(
        self,
        order_id: str,
        extra_event_type: str
    ) -> tuple[Order | None, list[AuditEvent], list[AuditEvent], bool]:
        """
        Read everything needed to derive an order's status in one locked pass.

        No write can commit between the individual reads, so the result
        reflects a single committed state.

        Args:
            order_id: Order to read
            extra_event_type: Event kind whose ref_id is not the order id
                (the caller matches those events to the order itself)

        Returns:
            (order or None, events keyed by order id, events of
            extra_event_type, whether the order has an image)
        """
        with self._lock:
            order = self.find_order(order_id)
            if order is None:
                return None, [], [], False
            return (
                order,
                self.query_audit_by_ref(order_id),
                self.query_audit_by_type(extra_event_type),
                self.order_has_image(order_id),
            )

    def count(self, table: str) -> int:
        """
        Get the number of rows in one of the workflow tables.

        Args:
            table: One of "patients", "orders", "images", "audit"
        """
        if table not in {"patients", "orders", "images", "audit"}:
            raise ValueError(f"Unknown table: {table}")
        with self._lock:
            row = self._connection().execute(f"SELECT COUNT(*) FROM {table}").fetchone()
        return row[0]

    @staticmethod
    def _row_to_patient(row: tuple) -> Patient:
        """
        Map a database row to a Patient entity.

        Args:
            row: Database row tuple

        Returns:
            Patient entity
        """
        return Patient(
            patient_id=row[0],
            mrn=row[1],
            encounter_id=row[2],
            first_name=row[3],
            last_name=row[4],
            dob=row[5],
            gender=row[6],
            allergies=row[7] or "",
        )


def create_imaging_repository(db_path, seed: bool = True) -> ImagingRepository:
    """
    Factory function to create a fully configured ImagingRepository.

    Args:
        db_path: Path to SQLite database file
        seed: Insert the demo patients into an empty database

    Returns:
        Configured ImagingRepository instance
    """
    repository = ImagingRepository(db_path)
    if seed:
        repository.seed_default_patients()
    return repository
