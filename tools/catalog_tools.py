# tools/catalog_tools.py
from typing import Dict, Iterable, List, Optional, Tuple
from models.sale_data import Operator
from utils.errors import SaleValidationError
from utils.logging_setup import setup_logging

logger = setup_logging()

OPERATOR_TAGS = ("energia_eletricidade", "energia_gas", "telecomunicacoes", "paineis_solares")


def required_operator_tags(category: Optional[str], energy_type: Optional[str] = None) -> Tuple[Tuple[str, ...], bool]:
    """
    Tags an operator must carry to be offered for a category.

    Returns:
        Tuple[Tuple[str, ...], bool]: The tags and whether all of them are
        required (dual energy) or any one is enough.
    """
    if category == "telecomunicacoes":
        return ("telecomunicacoes",), False
    if category == "paineis_solares":
        return ("paineis_solares",), False
    if category == "energia":
        if energy_type == "eletricidade":
            return ("energia_eletricidade",), False
        if energy_type == "gas":
            return ("energia_gas",), False
        if energy_type == "dual":
            return ("energia_eletricidade", "energia_gas"), True
    return (), False


def operator_supports(operator: Operator, category: Optional[str], energy_type: Optional[str] = None) -> bool:
    tags, match_all = required_operator_tags(category, energy_type)
    if not tags or not operator.categories:
        return False
    if match_all:
        return all(tag in operator.categories for tag in tags)
    return any(tag in operator.categories for tag in tags)


def filter_operators(operators: Iterable[Operator], category: Optional[str], energy_type: Optional[str] = None) -> List[Operator]:
    # Sem categoria (ou energia sem tipo) não há operadoras a escolher
    return [op for op in operators if operator_supports(op, category, energy_type)]


async def get_partners(store, include_inactive: bool = False) -> List[Dict]:
    filters = {} if include_inactive else {"active": True}
    return await store.find("partners", filters, order_by="name")


async def get_operators(store, partner_id: str = None, include_inactive: bool = False) -> List[Operator]:
    filters = {}
    if partner_id:
        filters["partner_id"] = partner_id
    if not include_inactive:
        filters["active"] = True
    rows = await store.find("operators", filters, order_by="name")
    return [Operator(**row) for row in rows]


async def get_operators_by_partner(store, partner_id: str) -> List[Operator]:
    if not partner_id:
        return []
    operators = await get_operators(store, partner_id)
    logger.debug(f"[{partner_id}] Loaded {len(operators)} active operators")
    return operators


async def get_operator_by_id(store, operator_id: str) -> Optional[Operator]:
    rows = await store.find("operators", {"id": operator_id})
    return Operator(**rows[0]) if rows else None


def _check_operator_data(data: Dict) -> None:
    if not data.get("name"):
        raise SaleValidationError("Nome da operadora é obrigatório", field="name")
    if not data.get("partner_id"):
        raise SaleValidationError("Parceiro é obrigatório", field="partner_id")
    categories = data.get("categories") or []
    if not categories:
        raise SaleValidationError("Selecione pelo menos uma categoria", field="categories")
    unknown = set(categories) - set(OPERATOR_TAGS)
    if unknown:
        raise SaleValidationError(f"Categorias inválidas: {', '.join(sorted(unknown))}", field="categories")


async def create_operator(store, data: Dict) -> Operator:
    _check_operator_data(data)
    record = await store.insert("operators", {**data, "active": True})
    logger.info(f"[{record.get('id')}] Operator created: {data.get('name')}")
    return Operator(**record)


async def update_operator(store, operator_id: str, data: Dict) -> Operator:
    if "categories" in data or "name" in data:
        current = await get_operator_by_id(store, operator_id)
        merged = {**(current.model_dump() if current else {}), **data}
        _check_operator_data(merged)
    return Operator(**await store.update("operators", operator_id, data))


async def toggle_operator_active(store, operator_id: str, active: bool) -> Operator:
    return await update_operator(store, operator_id, {"active": active})


async def delete_operator(store, operator_id: str) -> None:
    await store.delete("operators", operator_id)
    logger.info(f"[{operator_id}] Operator deleted")


async def create_partner(store, data: Dict) -> Dict:
    if not data.get("name"):
        raise SaleValidationError("Nome é obrigatório", field="name")
    record = await store.insert("partners", {**data, "active": True})
    logger.info(f"[{record.get('id')}] Partner created: {data.get('name')}")
    return record


async def update_partner(store, partner_id: str, data: Dict) -> Dict:
    if "name" in data and not data["name"]:
        raise SaleValidationError("Nome é obrigatório", field="name")
    return await store.update("partners", partner_id, data)


async def toggle_partner_active(store, partner_id: str, active: bool) -> Dict:
    return await update_partner(store, partner_id, {"active": active})


async def delete_partner(store, partner_id: str) -> None:
    await store.delete("partners", partner_id)
    logger.info(f"[{partner_id}] Partner deleted")
