# tools/sales_tools.py
import math
from datetime import datetime
from typing import Dict, List, Optional
import pytz
from dateutil import parser as date_parser
from config.config import APP_TIMEZONE
from models.sale_data import PriorContract, SalePayload, CATEGORIES, SALE_STATUSES
from tools.notification_tools import notify_safely
from utils.validation import validate_nif
from utils.logging_setup import setup_logging

logger = setup_logging()

SALES_WITH_RELATIONS = (
    "*, operators:operator_id (id, name, commission_visible_to_bo), "
    "sellers:seller_id (id, name), partners:partner_id (id, name)"
)
SALES_BY_NIF_SELECT = (
    "*, operators:operator_id (id, name, allowed_sale_types), "
    "sellers:seller_id (id, name, active), partners:partner_id (id, name)"
)


def days_until_end(loyalty_end_date: Optional[str], now: datetime = None) -> Optional[int]:
    if not loyalty_end_date:
        return None
    tz = pytz.timezone(APP_TIMEZONE)
    end = date_parser.isoparse(loyalty_end_date)
    if end.tzinfo is None:
        end = tz.localize(end)
    now = now or datetime.now(tz)
    return max(0, math.ceil((end - now).total_seconds() / 86400))


def annotate_sale(sale: Dict, now: datetime = None) -> Dict:
    return {
        **sale,
        "seller_name": (sale.get("sellers") or {}).get("name") or "Sem vendedor",
        "partner_name": (sale.get("partners") or {}).get("name") or "Sem parceiro",
        "days_until_end": days_until_end(sale.get("loyalty_end_date"), now),
    }


async def get_sales(store, seller_id: str = None, status: str = None, category: str = None, partner_id: str = None) -> List[Dict]:
    filters = {}
    if seller_id:
        filters["seller_id"] = seller_id
    if status:
        filters["status"] = status
    if category:
        filters["category"] = category
    if partner_id:
        filters["partner_id"] = partner_id
    sales = await store.find("sales", filters, select=SALES_WITH_RELATIONS, order_by="created_at", descending=True)
    return [annotate_sale(s) for s in sales]


async def get_sale_by_id(store, sale_id: str) -> Optional[Dict]:
    rows = await store.find("sales", {"id": sale_id}, select=SALES_WITH_RELATIONS)
    return annotate_sale(rows[0]) if rows else None


async def get_sales_by_nif(store, nif: str) -> List[PriorContract]:
    """
    Prior contracts for a client, newest first.

    Args:
        store: Record store.
        nif (str): 9-digit tax id; malformed values are rejected before querying.

    Returns:
        List[PriorContract]: Each with its operator's allowed sale types, its
        seller's active flag and its partner.
    """
    validate_nif(nif)
    rows = await store.find("sales", {"client_nif": nif}, select=SALES_BY_NIF_SELECT, order_by="created_at", descending=True)
    logger.info(f"[{nif}] Found {len(rows)} prior contracts")
    return [PriorContract(**row) for row in rows]


async def cancel_sale_loyalty_alerts(store, sale_id: str) -> Dict:
    record = await store.update("sales", sale_id, {"loyalty_months": 0, "loyalty_end_date": None})
    logger.info(f"[{sale_id}] Loyalty alerts cancelled")
    return record


async def create_sale(store, payload: SalePayload) -> Dict:
    """
    Submission gateway: insert the sale, then notify.

    A PersistenceError from the insert propagates with the backend message.
    Notification failures are logged and ignored.
    """
    record = await store.insert("sales", payload.model_dump())
    logger.info(f"[{record.get('id')}] Sale created for NIF {payload.client_nif} ({payload.category}, {payload.sale_type})")
    await notify_safely(store, record, "sale_created")
    return record


async def update_sale(store, sale_id: str, patch: Dict) -> Dict:
    original = await get_sale_by_id(store, sale_id)
    record = await store.update("sales", sale_id, patch)
    if original and original.get("status") != record.get("status"):
        await notify_safely(store, record, "sale_status_changed")
    return record


async def delete_sale(store, sale_id: str) -> None:
    await store.delete("sales", sale_id)
    logger.info(f"[{sale_id}] Sale deleted")


async def get_sale_statistics(store) -> Dict:
    sales = await store.find(
        "sales",
        select="status, category, contract_value, commission_seller, commission_partner, "
               "operators:operator_id (commission_visible_to_bo)",
    )
    visible = [s for s in sales if (s.get("operators") or {}).get("commission_visible_to_bo")]
    by_status = {status: sum(1 for s in sales if s.get("status") == status) for status in SALE_STATUSES}
    return {
        "total": len(sales),
        "active": by_status["ativo"],
        "pending": by_status["pendente"],
        "negotiating": by_status["em_negociacao"],
        "lost": by_status["perdido"],
        "cancelled": by_status["anulado"],
        "totalValue": sum(s.get("contract_value") or 0 for s in sales),
        "totalCommissionsSeller": sum(s.get("commission_seller") or 0 for s in visible),
        "totalCommissionsPartner": sum(s.get("commission_partner") or 0 for s in visible),
        "byCategory": {c: sum(1 for s in sales if s.get("category") == c) for c in CATEGORIES},
        "byStatus": by_status,
    }
