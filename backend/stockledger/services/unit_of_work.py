# Overview: Transaction scope for catalog mutations; commit on success, roll back on every error path.

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator

from flask import current_app
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..validation import (
    AlreadyAssignedError,
    CatalogError,
    ConcurrencyConflictError,
    ConflictError,
    DuplicateNameError,
    StorageUnavailableError,
)

# Unique constraints backing the in-transaction checks. Each entry lists the
# markers a driver may report (constraint name, or the SQLite message).
CONSTRAINT_ERRORS = (
    (("uq_products_name", "UNIQUE constraint failed: products.name"), DuplicateNameError,
     "A product with this name already exists"),
    (("store_products_pkey", "UNIQUE constraint failed: store_products.product_id"), AlreadyAssignedError,
     "Product is already assigned to this store"),
    (("uq_inventories_product_store", "UNIQUE constraint failed: inventories.product_id"), ConflictError,
     "Inventory already exists for this product and store"),
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def _conflict_for(exc: IntegrityError) -> ConflictError:
    detail = str(exc.orig)
    for markers, error_cls, message in CONSTRAINT_ERRORS:
        if any(marker in detail for marker in markers):
            return error_cls(message)
    return ConflictError(f"Constraint violated: {detail}")


def _rollback(exc: BaseException) -> None:
    db.session.rollback()
    kind = exc.code if isinstance(exc, CatalogError) else type(exc).__name__
    current_app.logger.warning("Unit of work rolled back: %s (%s)", kind, exc)


@contextmanager
def unit_of_work() -> Iterator[Session]:
    """
    Run the enclosed writes as one atomic transaction.

        with unit_of_work() as session:
            session.add(...)

    - Normal exit commits.
    - Any exception rolls back every write made inside the block, including
      rows already flushed earlier in the same call.
    - Store-level failures are translated so callers see one taxonomy:
        IntegrityError   -> DuplicateNameError / AlreadyAssignedError when the
                            violated constraint is known, else ConflictError
        StaleDataError   -> ConcurrencyConflictError (version_id mismatch)
        OperationalError -> StorageUnavailableError (locks, lost connection)
    - Nothing is retried here; retry policy belongs to the caller.
    """
    session = db.session
    try:
        yield session
        session.commit()
    except IntegrityError as exc:
        _rollback(exc)
        raise _conflict_for(exc) from exc
    except StaleDataError as exc:
        _rollback(exc)
        raise ConcurrencyConflictError("Row was modified by a concurrent transaction") from exc
    except OperationalError as exc:
        _rollback(exc)
        raise StorageUnavailableError(f"Storage unavailable: {exc.orig}") from exc
    except BaseException as exc:
        _rollback(exc)
        raise
