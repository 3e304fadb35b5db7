from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator, List

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from venusdb.database import get_db, get_read_db
from venusdb.security import get_current_active_user

from . import schemas, services

router = APIRouter(
    prefix="/inventory",
    tags=["inventory"],
    dependencies=[Depends(get_current_active_user)],
)

CONFLICT_RETRY_AFTER_SECONDS = "1"


@contextmanager
def _ledger_errors() -> Iterator[None]:
    """Translate ledger exceptions into HTTP responses."""
    try:
        yield
    except (services.InventoryNotFound, services.TransactionNotFound) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    except services.InsufficientStock as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={
                "message": str(exc),
                "available": exc.available,
                "requested": exc.requested,
            },
        )
    except services.LedgerConflict as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
            headers={"Retry-After": CONFLICT_RETRY_AFTER_SECONDS},
        )


# ---------------------------------------------------------------------------
# Additions
# ---------------------------------------------------------------------------


@router.post(
    "/additions",
    response_model=schemas.InventoryAdditionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_addition(
    payload: schemas.InventoryAdditionCreate,
    db: Session = Depends(get_db),
):
    with _ledger_errors():
        return services.record_addition(db, payload=payload)


@router.get("/additions", response_model=List[schemas.InventoryAdditionRead])
def list_additions(db: Session = Depends(get_read_db)):
    return services.list_additions(db)


@router.get(
    "/additions/inventory/{inventory_id}",
    response_model=List[schemas.InventoryAdditionRead],
)
def list_additions_for_item(inventory_id: int, db: Session = Depends(get_read_db)):
    return services.list_additions(db, inventory_id=inventory_id)


@router.get("/additions/{addition_id}", response_model=schemas.InventoryAdditionRead)
def get_addition(addition_id: int, db: Session = Depends(get_read_db)):
    with _ledger_errors():
        return services.get_addition(db, addition_id=addition_id)


@router.delete("/additions/{addition_id}")
def delete_addition(addition_id: int, db: Session = Depends(get_db)):
    with _ledger_errors():
        services.delete_addition(db, addition_id=addition_id)
    return {"message": "Addition deleted successfully"}


# ---------------------------------------------------------------------------
# Subtractions
# ---------------------------------------------------------------------------


@router.post(
    "/subtractions",
    response_model=schemas.InventorySubtractionRead,
    status_code=status.HTTP_201_CREATED,
)
def create_subtraction(
    payload: schemas.InventorySubtractionCreate,
    db: Session = Depends(get_db),
):
    with _ledger_errors():
        return services.record_subtraction(db, payload=payload)


@router.get("/subtractions", response_model=List[schemas.InventorySubtractionRead])
def list_subtractions(db: Session = Depends(get_read_db)):
    return services.list_subtractions(db)


@router.get(
    "/subtractions/inventory/{inventory_id}",
    response_model=List[schemas.InventorySubtractionRead],
)
def list_subtractions_for_item(inventory_id: int, db: Session = Depends(get_read_db)):
    return services.list_subtractions(db, inventory_id=inventory_id)


@router.get("/subtractions/{subtraction_id}", response_model=schemas.InventorySubtractionRead)
def get_subtraction(subtraction_id: int, db: Session = Depends(get_read_db)):
    with _ledger_errors():
        return services.get_subtraction(db, subtraction_id=subtraction_id)


@router.delete("/subtractions/{subtraction_id}")
def delete_subtraction(subtraction_id: int, db: Session = Depends(get_db)):
    with _ledger_errors():
        services.delete_subtraction(db, subtraction_id=subtraction_id)
    return {"message": "Subtraction deleted successfully"}


# ---------------------------------------------------------------------------
# Inventory items
# ---------------------------------------------------------------------------


@router.post(
    "",
    response_model=schemas.InventoryItemRead,
    status_code=status.HTTP_201_CREATED,
)
def create_inventory_item(
    payload: schemas.InventoryItemCreate,
    db: Session = Depends(get_db),
):
    with _ledger_errors():
        return services.create_inventory_item(db, payload=payload)


@router.get("", response_model=List[schemas.InventoryItemRead])
def list_inventory_items(db: Session = Depends(get_read_db)):
    return services.list_inventory_items(db)


@router.get("/{inventory_id}", response_model=schemas.InventoryItemRead)
def get_inventory_item(inventory_id: int, db: Session = Depends(get_read_db)):
    with _ledger_errors():
        return services.get_inventory_item(db, inventory_id=inventory_id)


@router.get("/{inventory_id}/stock", response_model=schemas.StockLevelRead)
def get_stock_level(inventory_id: int, db: Session = Depends(get_read_db)):
    with _ledger_errors():
        return services.get_stock_level(db, inventory_id=inventory_id)


@router.put("/{inventory_id}", response_model=schemas.InventoryItemRead)
def update_inventory_item(
    inventory_id: int,
    payload: schemas.InventoryItemUpdate,
    db: Session = Depends(get_db),
):
    with _ledger_errors():
        return services.update_inventory_item(db, inventory_id=inventory_id, payload=payload)


@router.delete("/{inventory_id}")
def delete_inventory_item(inventory_id: int, db: Session = Depends(get_db)):
    with _ledger_errors():
        services.delete_inventory_item(db, inventory_id=inventory_id)
    return {"message": "Inventory item deleted successfully"}
