"""
Batch Upsert Executor

Persists program rows in fixed-size batches. Each batch is one transaction
holding a single INSERT ... ON CONFLICT (location_id, program_name) DO UPDATE
that overwrites every mutable column with the incoming snapshot.

On PostgreSQL the upsert returns `xmax = 0` per row, which is true only for
freshly inserted tuples, so inserts and updates are counted from the upsert
itself. SQLite has no xmax; there the keys already present are read inside
the batch transaction just before the upsert.
"""
from dataclasses import dataclass
from typing import List, Sequence, Set, Tuple

from sqlalchemy import literal_column, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from shelter_sync.models import Program, PROGRAM_MUTABLE_FIELDS, dialect_insert
from shelter_sync.services.exceptions import BatchPersistenceError
from shelter_sync.services.program_reconciler import ProgramRow
from shelter_sync.utils.helpers import chunk_list
from shelter_sync.utils.logger import log

DEFAULT_BATCH_SIZE = 500

ProgramKey = Tuple[int, str]


@dataclass
class UpsertResult:
    inserted: int = 0
    updated: int = 0
    batches: int = 0


class BatchUpsertExecutor:
    """
    Applies program rows batch by batch, in order.

    A failing batch is rolled back and raises BatchPersistenceError; batches
    committed before it stay durable. Rows must already be deduplicated so no
    (location_id, program_name) key spans two batches.
    """

    def __init__(self, session: Session, batch_size: int = DEFAULT_BATCH_SIZE):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.session = session
        self.batch_size = batch_size

    def execute(self, rows: Sequence[ProgramRow]) -> UpsertResult:
        result = UpsertResult()
        batches = chunk_list(list(rows), self.batch_size)
        reports_xmax = self.session.get_bind().dialect.name == "postgresql"

        for index, batch in enumerate(batches):
            try:
                if reports_xmax:
                    inserted = self._upsert_returning_inserted(batch)
                else:
                    existing = self._existing_keys(batch)
                    self._upsert(batch)
                    inserted = sum(1 for row in batch if (row.location_id, row.program_name) not in existing)
                self.session.commit()
            except SQLAlchemyError as e:
                self.session.rollback()
                log.error(f"Program batch {index + 1}/{len(batches)} failed, aborting: {e}")
                raise BatchPersistenceError(index, result.batches, e) from e

            updated = len(batch) - inserted
            result.updated += updated
            result.inserted += inserted
            result.batches += 1
            log.info(
                f"Program batch {index + 1}/{len(batches)}: "
                f"{inserted} inserted, {updated} updated"
            )

        return result

    def _existing_keys(self, batch: List[ProgramRow]) -> Set[ProgramKey]:
        location_ids = list({row.location_id for row in batch})
        names = list({row.program_name for row in batch})
        stmt = select(Program.location_id, Program.program_name).where(
            Program.location_id.in_(location_ids),
            Program.program_name.in_(names),
        )
        return {(location_id, name) for location_id, name in self.session.execute(stmt)}

    def _upsert_statement(self, batch: List[ProgramRow]):
        insert_stmt = dialect_insert(self.session, Program).values([row.to_dict() for row in batch])
        return insert_stmt.on_conflict_do_update(
            index_elements=["location_id", "program_name"],
            set_={name: insert_stmt.excluded[name] for name in PROGRAM_MUTABLE_FIELDS},
        )

    def _upsert(self, batch: List[ProgramRow]) -> None:
        self.session.execute(self._upsert_statement(batch))

    def _upsert_returning_inserted(self, batch: List[ProgramRow]) -> int:
        stmt = self._upsert_statement(batch).returning(literal_column("xmax = 0").label("inserted"))
        return sum(1 for inserted in self.session.execute(stmt).scalars() if inserted)
