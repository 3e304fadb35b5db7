from __future__ import annotations

import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional, Type, Union

from sqlalchemy import func
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm import Session

from venusdb.database import WRITE_LOCK_OPTION

from . import models, schemas

logger = logging.getLogger(__name__)

# serialization_failure, deadlock_detected, lock_not_available
_CONFLICT_SQLSTATES = {"40001", "40P01", "55P03"}

TransactionModel = Union[Type[models.InventoryAddition], Type[models.InventorySubtraction]]


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------


class LedgerError(Exception):
    """Base class for stock ledger failures reported to the caller."""


class InventoryNotFound(LedgerError):
    def __init__(self, inventory_id: int) -> None:
        super().__init__("Inventory item not found")
        self.inventory_id = inventory_id


class TransactionNotFound(LedgerError):
    def __init__(self, kind: str, record_id: int) -> None:
        super().__init__(f"{kind.capitalize()} record not found")
        self.kind = kind
        self.record_id = record_id


class InsufficientStock(LedgerError):
    """Raised when a ledger write would take an item's stock below zero."""

    def __init__(self, *, available: int, requested: int) -> None:
        super().__init__(
            f"Insufficient inventory. Available: {available}, Requested: {requested}"
        )
        self.available = available
        self.requested = requested


class LedgerConflict(LedgerError):
    """
    A concurrent transaction on the same data made the store abort ours.

    Nothing was written. The caller may retry the whole operation.
    """


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------


def _utcnow() -> datetime:
    return datetime.utcnow()


def _as_utc(value: Optional[datetime]) -> datetime:
    """Ledger dates are stored as naive UTC; aware input is converted."""
    if value is None:
        return _utcnow()
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def _is_lock_conflict(exc: DBAPIError) -> bool:
    orig = getattr(exc, "orig", None)
    code = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if code in _CONFLICT_SQLSTATES:
        return True
    return isinstance(exc, OperationalError) and "database is locked" in str(orig).lower()


@contextmanager
def _ledger_unit(db: Session, *, operation: str, inventory_id: Optional[int]) -> Iterator[None]:
    """
    Run the enclosed block as one atomic unit and commit it.

    The unit always gets a transaction of its own, opened with the write
    lock on SQLite. Work the session already holds (such as the current
    user lookup) is committed first. Any failure rolls the whole unit back,
    so callers never observe a half-applied ledger write.
    """
    try:
        if db.in_transaction():
            db.commit()
        db.connection(execution_options={WRITE_LOCK_OPTION: True})
        yield
        db.commit()
    except DBAPIError as exc:
        db.rollback()
        if _is_lock_conflict(exc):
            logger.warning(
                "Ledger write aborted by concurrent transaction",
                extra={"operation": operation, "inventory_id": inventory_id},
            )
            raise LedgerConflict(
                "The inventory item was modified concurrently; retry the request."
            ) from exc
        raise
    except Exception:
        db.rollback()
        raise


def _lock_inventory_item(db: Session, inventory_id: int) -> Optional[models.InventoryItem]:
    """
    Load the item and hold a row lock on it until the unit ends.

    Every ledger write for an item goes through this lock, which is what
    serializes the balance check against concurrent writers.
    """
    return (
        db.query(models.InventoryItem)
        .filter(models.InventoryItem.id == inventory_id)
        .with_for_update()
        .populate_existing()
        .one_or_none()
    )


def _get_item(db: Session, inventory_id: int) -> models.InventoryItem:
    item = (
        db.query(models.InventoryItem)
        .filter(models.InventoryItem.id == inventory_id)
        .one_or_none()
    )
    if item is None:
        raise InventoryNotFound(inventory_id)
    return item


def _sum_quantity(db: Session, model: TransactionModel, inventory_id: int) -> int:
    total = (
        db.query(func.coalesce(func.sum(model.quantity), 0))
        .filter(model.inventory_id == inventory_id)
        .scalar()
    )
    return int(total or 0)


def _sum_quantity_by_item(db: Session, model: TransactionModel, item_ids: List[int]) -> Dict[int, int]:
    rows = (
        db.query(model.inventory_id, func.sum(model.quantity))
        .filter(model.inventory_id.in_(item_ids))
        .group_by(model.inventory_id)
        .all()
    )
    return {inventory_id: int(total or 0) for inventory_id, total in rows}


def _with_stock(item: models.InventoryItem, current_stock: int) -> schemas.InventoryItemRead:
    read = schemas.InventoryItemRead.model_validate(item)
    read.current_stock = current_stock
    return read


def _build_entry(model: TransactionModel, payload: schemas.StockTransactionBase):
    return model(
        inventory_id=payload.inventory_id,
        quantity=payload.quantity,
        price=payload.price,
        vendor=payload.vendor,
        phone=payload.phone,
        date=_as_utc(payload.date),
        remarks=payload.remarks,
    )


# ---------------------------------------------------------------------------
# Current stock
# ---------------------------------------------------------------------------


def compute_current_stock(db: Session, *, inventory_id: int) -> int:
    """
    Sum of additions minus sum of subtractions for one item.

    Items without transactions (or unknown ids) read as 0. This always
    aggregates the persisted rows; stock is never cached.
    """
    added = _sum_quantity(db, models.InventoryAddition, inventory_id)
    removed = _sum_quantity(db, models.InventorySubtraction, inventory_id)
    return added - removed


def get_stock_level(db: Session, *, inventory_id: int) -> schemas.StockLevelRead:
    _get_item(db, inventory_id)
    return schemas.StockLevelRead(
        inventory_id=inventory_id,
        current_stock=compute_current_stock(db, inventory_id=inventory_id),
    )


# ---------------------------------------------------------------------------
# Inventory items
# ---------------------------------------------------------------------------


def create_inventory_item(db: Session, *, payload: schemas.InventoryItemCreate) -> models.InventoryItem:
    item = models.InventoryItem(**payload.model_dump())
    with _ledger_unit(db, operation="create_item", inventory_id=None):
        db.add(item)
    db.refresh(item)
    logger.info("Inventory item created", extra={"inventory_id": item.id})
    return item


def list_inventory_items(db: Session) -> List[schemas.InventoryItemRead]:
    items = (
        db.query(models.InventoryItem)
        .order_by(models.InventoryItem.created_at.desc(), models.InventoryItem.id.desc())
        .all()
    )
    if not items:
        return []
    item_ids = [item.id for item in items]
    added = _sum_quantity_by_item(db, models.InventoryAddition, item_ids)
    removed = _sum_quantity_by_item(db, models.InventorySubtraction, item_ids)
    return [
        _with_stock(item, added.get(item.id, 0) - removed.get(item.id, 0))
        for item in items
    ]


def get_inventory_item(db: Session, *, inventory_id: int) -> schemas.InventoryItemRead:
    item = _get_item(db, inventory_id)
    return _with_stock(item, compute_current_stock(db, inventory_id=inventory_id))


def update_inventory_item(
    db: Session,
    *,
    inventory_id: int,
    payload: schemas.InventoryItemUpdate,
) -> schemas.InventoryItemRead:
    with _ledger_unit(db, operation="update_item", inventory_id=inventory_id):
        item = _lock_inventory_item(db, inventory_id)
        if item is None:
            raise InventoryNotFound(inventory_id)
        for field, value in payload.model_dump(exclude_unset=True).items():
            setattr(item, field, value)
    db.refresh(item)
    return _with_stock(item, compute_current_stock(db, inventory_id=inventory_id))


def delete_inventory_item(db: Session, *, inventory_id: int) -> None:
    """
    Hard-delete an item together with its addition and subtraction history.
    """
    with _ledger_unit(db, operation="delete_item", inventory_id=inventory_id):
        item = _lock_inventory_item(db, inventory_id)
        if item is None:
            raise InventoryNotFound(inventory_id)
        history = len(item.additions) + len(item.subtractions)
        db.delete(item)
    if history:
        logger.warning(
            "Inventory item deleted with its transaction history",
            extra={"inventory_id": inventory_id, "transactions_deleted": history},
        )


# ---------------------------------------------------------------------------
# Ledger writes
# ---------------------------------------------------------------------------


def record_addition(
    db: Session,
    *,
    payload: schemas.InventoryAdditionCreate,
) -> models.InventoryAddition:
    with _ledger_unit(db, operation="addition", inventory_id=payload.inventory_id):
        item = _lock_inventory_item(db, payload.inventory_id)
        if item is None:
            raise InventoryNotFound(payload.inventory_id)
        entry = _build_entry(models.InventoryAddition, payload)
        db.add(entry)
        db.flush()
    db.refresh(entry)
    logger.info(
        "Stock added",
        extra={"inventory_id": entry.inventory_id, "addition_id": entry.id, "quantity": entry.quantity},
    )
    return entry


def record_subtraction(
    db: Session,
    *,
    payload: schemas.InventorySubtractionCreate,
) -> models.InventorySubtraction:
    """
    Record a stock-out, refusing it if the item does not hold enough stock.

    The balance is recomputed while the item row is locked, and the insert
    happens before that lock is released, so concurrent subtractions on the
    same item are checked one after another.
    """
    with _ledger_unit(db, operation="subtraction", inventory_id=payload.inventory_id):
        item = _lock_inventory_item(db, payload.inventory_id)
        if item is None:
            raise InventoryNotFound(payload.inventory_id)
        available = compute_current_stock(db, inventory_id=item.id)
        if payload.quantity > available:
            logger.info(
                "Subtraction rejected for insufficient stock",
                extra={
                    "inventory_id": item.id,
                    "available": available,
                    "requested": payload.quantity,
                },
            )
            raise InsufficientStock(available=available, requested=payload.quantity)
        entry = _build_entry(models.InventorySubtraction, payload)
        db.add(entry)
        db.flush()
    db.refresh(entry)
    logger.info(
        "Stock subtracted",
        extra={"inventory_id": entry.inventory_id, "subtraction_id": entry.id, "quantity": entry.quantity},
    )
    return entry


# ---------------------------------------------------------------------------
# Transaction history
# ---------------------------------------------------------------------------


def _list_transactions(db: Session, model: TransactionModel, inventory_id: Optional[int]) -> List:
    query = db.query(model)
    if inventory_id is not None:
        query = query.filter(model.inventory_id == inventory_id)
    return query.order_by(model.date.desc(), model.id.desc()).all()


def _get_transaction(db: Session, model: TransactionModel, kind: str, record_id: int):
    entry = db.query(model).filter(model.id == record_id).one_or_none()
    if entry is None:
        raise TransactionNotFound(kind, record_id)
    return entry


def list_additions(db: Session, *, inventory_id: Optional[int] = None) -> List[models.InventoryAddition]:
    return _list_transactions(db, models.InventoryAddition, inventory_id)


def list_subtractions(db: Session, *, inventory_id: Optional[int] = None) -> List[models.InventorySubtraction]:
    return _list_transactions(db, models.InventorySubtraction, inventory_id)


def get_addition(db: Session, *, addition_id: int) -> models.InventoryAddition:
    return _get_transaction(db, models.InventoryAddition, "addition", addition_id)


def get_subtraction(db: Session, *, subtraction_id: int) -> models.InventorySubtraction:
    return _get_transaction(db, models.InventorySubtraction, "subtraction", subtraction_id)


def delete_addition(db: Session, *, addition_id: int) -> None:
    """
    Delete an addition unless later subtractions depend on it.

    Removing stock-in retroactively must not leave the item below zero,
    so the check runs under the same item lock as subtractions. The record
    is re-read under that lock; a concurrent delete that got there first
    makes this one a not-found.
    """
    inventory_id = get_addition(db, addition_id=addition_id).inventory_id
    with _ledger_unit(db, operation="delete_addition", inventory_id=inventory_id):
        if _lock_inventory_item(db, inventory_id) is None:
            raise TransactionNotFound("addition", addition_id)
        entry = get_addition(db, addition_id=addition_id)
        available = compute_current_stock(db, inventory_id=inventory_id)
        if available - entry.quantity < 0:
            logger.info(
                "Addition delete rejected; stock would go negative",
                extra={"inventory_id": inventory_id, "addition_id": addition_id, "available": available},
            )
            raise InsufficientStock(available=available, requested=entry.quantity)
        db.delete(entry)
    logger.info("Addition deleted", extra={"inventory_id": inventory_id, "addition_id": addition_id})


def delete_subtraction(db: Session, *, subtraction_id: int) -> None:
    inventory_id = get_subtraction(db, subtraction_id=subtraction_id).inventory_id
    with _ledger_unit(db, operation="delete_subtraction", inventory_id=inventory_id):
        if _lock_inventory_item(db, inventory_id) is None:
            raise TransactionNotFound("subtraction", subtraction_id)
        db.delete(get_subtraction(db, subtraction_id=subtraction_id))
    logger.info("Subtraction deleted", extra={"inventory_id": inventory_id, "subtraction_id": subtraction_id})
