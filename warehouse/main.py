"""HTTP API for the Warehouse service.

Provides endpoints for item CRUD, quantity updates and their history, QR scan
lookups and quick updates, inventory counts, categories, users, CSV import and
export, and label payloads.

Every request is made on behalf of the user named in the ``X-User-Id`` header.
Service errors are rendered by a single exception handler using their
``status_code`` and ``code``.

Copyright (c) Bryn Gwalad 2025
"""

from typing import List, Optional
import os
import logging
from datetime import date, datetime, timedelta

from fastapi import Depends, FastAPI, File, Header, Query, Request, UploadFile
from fastapi.responses import JSONResponse, Response
from dotenv import load_dotenv

# Load environment variables from a .env file at project root if present.
load_dotenv()

from . import admin, items, labels, ledger, locations, scans, stats, transfer
from .database import get_session, init_db
from .exceptions import InventoryError, ValidationError
from .identity import Identity, resolve_identity
from .models import (
    BulkQtyRequest,
    CategoryCreate,
    InventoryCountRequest,
    ItemCreate,
    ItemUpdate,
    LabelsRequest,
    LocationCreate,
    QrQuickUpdateRequest,
    QrScanRequest,
    QtyUpdateRequest,
    UserCreate,
)
from .serializers import (
    serialize_category,
    serialize_history,
    serialize_item,
    serialize_location,
    serialize_scan,
    serialize_user,
)

# Admin users configuration: comma-separated list in env ADMIN_USERS, fallback to ['admin'].
# These names act as unscoped admins even before any User row exists.
ADMIN_USERS = [u.strip() for u in os.getenv("ADMIN_USERS", "admin").split(",") if u.strip()]

app = FastAPI(title="Warehouse API")

# Module logger
logger = logging.getLogger("warehouse_api")


@app.on_event("startup")
async def on_startup():
    """Application startup handler: create tables and configure logging."""
    init_db()

    # Configure logger (do not override global config if already set by app)
    if not logging.getLogger().handlers:
        logging.basicConfig(level=os.getenv("LOG_LEVEL", "INFO").upper())
    logger.info("Warehouse API started; bootstrap admins=%s", ADMIN_USERS)


@app.exception_handler(InventoryError)
async def inventory_error_handler(request: Request, exc: InventoryError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s -> %s %s", request.method, request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


def current_identity(x_user_id: str = Header("", alias="X-User-Id")) -> Identity:
    with get_session() as session:
        return resolve_identity(session, x_user_id, ADMIN_USERS)


def _parse_date_range(date_from: Optional[str], date_to: Optional[str]):
    """Parse ISO dates/datetimes; a bare end date includes that entire day."""
    dt_from = None
    dt_to = None
    try:
        if date_from:
            dt_from = datetime.fromisoformat(date_from)
        if date_to:
            dt_to = datetime.fromisoformat(date_to)
            if len(date_to) == 10:
                dt_to = dt_to + timedelta(days=1) - timedelta(microseconds=1)
    except ValueError:
        raise ValidationError("start_date/end_date must be ISO format (YYYY-MM-DD or full ISO datetime)") from None
    return dt_from, dt_to


def _ledger_response(result: ledger.LedgerResult, message: str) -> dict:
    return {
        "success": True,
        "item": serialize_item(result.item),
        "history": serialize_history(result.history),
        "message": message,
    }


# Items


@app.post("/items/")
def create_item(draft: ItemCreate, identity: Identity = Depends(current_identity)):
    """Create an item. Opening stock is recorded as an inbound history entry."""
    with get_session() as session:
        item = items.create_item(session, identity, draft)
        return serialize_item(item)


@app.get("/items/")
def list_items(
    search: Optional[str] = None,
    location_code: Optional[str] = None,
    komponen: Optional[str] = None,
    low_stock: bool = False,
    sort_by: Optional[str] = None,
    sort_order: str = "asc",
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
):
    filters = items.ItemFilters(
        search=search,
        location_code=location_code,
        komponen=komponen,
        low_stock=low_stock,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
    )
    with get_session() as session:
        page = items.list_items(session, identity, filters)
        return {
            "items": [serialize_item(i) for i in page.items],
            "total": page.total,
            "limit": page.limit,
            "offset": page.offset,
            "has_more": page.has_more,
        }


@app.get("/items/{item_id}")
def get_item(item_id: int, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return serialize_item(items.get_item(session, identity, item_id))


@app.put("/items/{item_id}")
def update_item(item_id: int, patch: ItemUpdate, identity: Identity = Depends(current_identity)):
    """Update item fields; a changed qty is recorded in the item's history."""
    with get_session() as session:
        return serialize_item(items.update_item(session, identity, item_id, patch))


@app.delete("/items/{item_id}")
def delete_item(item_id: int, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        items.delete_item(session, identity, item_id)
        return {"status": "deleted", "message": "Item deleted successfully"}


@app.post("/items/bulk/update-qty")
def bulk_update_qty(body: BulkQtyRequest, identity: Identity = Depends(current_identity)):
    """Apply several quantity changes; lines that fail are skipped."""
    lines = [ledger.BulkLine(item_id=line.id, adjustment=line.adjustment, new_qty=line.new_qty) for line in body.items]
    with get_session() as session:
        result = ledger.bulk_apply(session, identity, lines, body.change_type, body.notes)
        return {
            "success": True,
            "attempted": result.attempted,
            "updated_count": result.updated_count,
            "results": result.results,
        }


@app.post("/items/{item_id}/update-qty")
def update_qty(item_id: int, body: QtyUpdateRequest, identity: Identity = Depends(current_identity)):
    request = ledger.quantity_request(body.new_qty, body.adjustment, body.change_type, body.notes)
    with get_session() as session:
        result = ledger.apply_detail_update(session, identity, item_id, request)
        message = f"Qty updated from {result.history.old_qty} to {result.history.new_qty}"
        return _ledger_response(result, message)


@app.get("/items/{item_id}/qty-history")
def item_qty_history(
    item_id: int,
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    change_type: Optional[str] = None,
    limit: int = Query(50, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
):
    dt_from, dt_to = _parse_date_range(start_date, end_date)
    filters = ledger.HistoryFilters(dt_from, dt_to, change_type, limit, offset)
    with get_session() as session:
        return [serialize_history(h) for h in ledger.list_history(session, identity, item_id, filters)]


@app.get("/qty-history")
def qty_history(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    change_type: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
):
    """Return quantity history across all visible items, newest first."""
    dt_from, dt_to = _parse_date_range(start_date, end_date)
    filters = ledger.HistoryFilters(dt_from, dt_to, change_type, limit, offset)
    with get_session() as session:
        return [serialize_history(h) for h in ledger.list_all_history(session, identity, filters)]


@app.get("/dashboard/stats")
def dashboard_stats(identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return stats.dashboard_stats(session, identity)


@app.get("/unique-values")
def unique_values(identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return items.unique_values(session, identity)


# QR scanning


@app.post("/qr-scan")
def qr_scan(body: QrScanRequest, identity: Identity = Depends(current_identity)):
    """Look up items from a scanned payload and log the scan."""
    with get_session() as session:
        result = scans.scan_lookup(session, identity, body.qr_data, body.scan_type, body.mode)
        return {
            "success": True,
            "count": result.count,
            "items": [serialize_item(i) for i in result.items],
            "qr_data": result.qr_data,
        }


@app.post("/qr-quick-update")
def qr_quick_update(body: QrQuickUpdateRequest, identity: Identity = Depends(current_identity)):
    request = ledger.quantity_request(body.new_qty, body.adjustment, body.change_type, body.notes)
    with get_session() as session:
        result = ledger.apply_qr_update(session, identity, body.qr_data, request)
        change = result.history.change_amount
        message = f"Qty updated via QR: {result.history.old_qty} → {result.history.new_qty} ({change:+d})"
        return _ledger_response(result, message)


@app.post("/inventory/count")
def inventory_count(body: InventoryCountRequest, identity: Identity = Depends(current_identity)):
    lines = [scans.CountLine(qr_data=s.qr_data, counted_qty=s.counted_qty) for s in body.scans]
    with get_session() as session:
        outcome = scans.count_inventory(session, identity, lines)
        return {
            "success": True,
            "total_scanned": len(outcome.results),
            "results": outcome.results,
            "discrepancies": outcome.discrepancies,
            "discrepancy_count": len(outcome.discrepancies),
        }


@app.get("/scan-logs")
def scan_logs(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    action: Optional[str] = None,
    limit: int = Query(100, ge=1, le=1000),
    offset: int = Query(0, ge=0),
    identity: Identity = Depends(current_identity),
):
    dt_from, dt_to = _parse_date_range(start_date, end_date)
    filters = scans.ScanFilters(dt_from, dt_to, action, limit, offset)
    with get_session() as session:
        return [serialize_scan(s) for s in scans.list_scan_logs(session, identity, filters)]


# Locations


@app.post("/locations/")
def create_location(location: LocationCreate, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        created = locations.create_location(session, identity, location)
        return serialize_location(locations.LocationStock(created))


@app.get("/locations/")
def list_locations(identity: Identity = Depends(current_identity)):
    """Return every location with the items in it the caller can see."""
    with get_session() as session:
        return [serialize_location(s) for s in locations.list_locations(session, identity)]


# Categories


@app.post("/categories/")
def create_category(category: CategoryCreate, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return serialize_category(admin.create_category(session, identity, category))


@app.get("/categories/")
def list_categories(identity: Identity = Depends(current_identity)):
    """Return a list of all categories."""
    with get_session() as session:
        return [serialize_category(c) for c in admin.list_categories(session)]


@app.put("/categories/{category_id}")
def update_category(category_id: int, category: CategoryCreate, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return serialize_category(admin.update_category(session, identity, category_id, category))


@app.delete("/categories/{category_id}")
def delete_category(category_id: int, identity: Identity = Depends(current_identity)):
    """Delete a category; refused while items or users still reference it."""
    with get_session() as session:
        admin.delete_category(session, identity, category_id)
        return {"ok": True}


# Users


@app.post("/users/")
def create_user(user: UserCreate, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return serialize_user(admin.create_user(session, identity, user))


@app.get("/users/")
def list_users(identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return [serialize_user(u) for u in admin.list_users(session, identity)]


@app.delete("/users/{user_id}")
def delete_user(user_id: int, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        admin.delete_user(session, identity, user_id)
        return {"ok": True}


# Export / import / labels


def _attachment(content: str, media_type: str, filename: str) -> Response:
    return Response(
        content=content,
        media_type=media_type,
        headers={"Content-Disposition": f"attachment; filename={filename}"},
    )


@app.get("/export/csv")
def export_csv(identity: Identity = Depends(current_identity)):
    with get_session() as session:
        content = transfer.export_items_csv(session, identity)
    return _attachment(content, "text/csv", f"warehouse-export-{date.today().isoformat()}.csv")


@app.get("/export/history-csv")
def export_history_csv(
    start_date: Optional[str] = None,
    end_date: Optional[str] = None,
    change_type: Optional[str] = None,
    limit: int = Query(1000, ge=1, le=100000),
    identity: Identity = Depends(current_identity),
):
    dt_from, dt_to = _parse_date_range(start_date, end_date)
    filters = ledger.HistoryFilters(dt_from, dt_to, change_type, limit)
    with get_session() as session:
        content = transfer.export_history_csv(session, identity, filters)
    return _attachment(content, "text/csv", f"warehouse-history-{date.today().isoformat()}.csv")


@app.post("/import")
def import_items(file: UploadFile = File(...), identity: Identity = Depends(current_identity)):
    """Create items from a CSV or XLSX upload laid out like the CSV export."""
    try:
        data = file.file.read()
    finally:
        file.file.close()
    rows = transfer.read_tabular(file.filename, data)
    with get_session() as session:
        result = transfer.import_items(session, identity, rows)
        return {
            "success": True,
            "message": f"Imported {len(result.created)} items",
            "items": [serialize_item(i) for i in result.created],
            "errors": [{"row": row, "message": message} for row, message in result.errors],
        }


@app.get("/backup")
def backup(identity: Identity = Depends(current_identity)):
    with get_session() as session:
        snapshot = transfer.backup_snapshot(session, identity)
    stamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S")
    return JSONResponse(
        content=snapshot,
        headers={"Content-Disposition": f"attachment; filename=warehouse-backup-{stamp}.json"},
    )


@app.get("/items/{item_id}/label-data")
def label_data(item_id: int, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        return labels.label_data(session, identity, item_id)


@app.post("/labels/bulk")
def bulk_labels(body: LabelsRequest, identity: Identity = Depends(current_identity)):
    with get_session() as session:
        result: List[dict] = labels.bulk_labels(session, identity, body.item_ids)
        return {"success": True, "count": len(result), "labels": result}
