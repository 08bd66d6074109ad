# tools/notification_tools.py
from typing import Dict, List
from utils.errors import IntakeError, NotificationError
from utils.logging_setup import setup_logging

logger = setup_logging()

NOTIFIED_ROLES = ("admin", "backoffice")

EVENT_TITLES = {
    "sale_created": "Nova venda registada",
    "sale_status_changed": "Estado de venda alterado",
}


def build_sale_message(sale: Dict, event_type: str) -> str:
    client = sale.get("client_name") or "Cliente"
    if event_type == "sale_status_changed":
        return f"A venda de {client} passou para o estado {sale.get('status')}."
    return f"Venda de {client} registada ({sale.get('category') or 'sem categoria'})."


async def _recipients(store, sale: Dict) -> List[str]:
    users = await store.find("users", {"active": True})
    recipients = [u["id"] for u in users if u.get("role") in NOTIFIED_ROLES]
    seller_id = sale.get("seller_id")
    if seller_id and seller_id not in recipients:
        recipients.append(seller_id)
    return recipients


async def create_sale_notifications(store, sale: Dict, event_type: str) -> int:
    """
    Insert one notification row per recipient for a sale event.

    Args:
        store: Record store.
        sale (Dict): The persisted sale record.
        event_type (str): 'sale_created' or 'sale_status_changed'.

    Returns:
        int: Number of notifications created.

    Raises:
        NotificationError: If the recipients cannot be read or a row cannot be written.
    """
    try:
        recipients = await _recipients(store, sale)
        for user_id in recipients:
            await store.insert("notifications", {
                "user_id": user_id,
                "sale_id": sale.get("id"),
                "type": event_type,
                "title": EVENT_TITLES.get(event_type, event_type),
                "message": build_sale_message(sale, event_type),
                "read": False,
            })
    except IntakeError as e:
        raise NotificationError(e.message) from e
    logger.debug(f"[{sale.get('id')}] Created {len(recipients)} '{event_type}' notifications")
    return len(recipients)


async def notify_safely(store, sale: Dict, event_type: str) -> int:
    """Best-effort wrapper: a failed notification never affects the caller."""
    try:
        return await create_sale_notifications(store, sale, event_type)
    except Exception as e:
        logger.warning(f"[{sale.get('id')}] Error creating notifications for '{event_type}': {str(e)}")
        return 0
