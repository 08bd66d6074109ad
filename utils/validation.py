# utils/validation.py
import math
import re
from typing import Iterable, List, NamedTuple, Optional

from models.sale_data import SaleDraft, SalePayload, NO_SELLER, STATUS_NEGOTIATING
from utils.errors import SaleValidationError
from utils.logging_setup import setup_logging

logger = setup_logging()

NIF_PATTERN = re.compile(r"[0-9]{9}")
POSTAL_CODE_PATTERN = re.compile(r"[0-9]{4}-[0-9]{3}")
LEADING_INT_PATTERN = re.compile(r"\s*[-+]?[0-9]+")


class Violation(NamedTuple):
    field: str
    message: str


def is_valid_nif(nif: Optional[str]) -> bool:
    return bool(nif) and NIF_PATTERN.fullmatch(nif) is not None


def is_valid_postal_code(postal_code: Optional[str]) -> bool:
    return bool(postal_code) and POSTAL_CODE_PATTERN.fullmatch(postal_code) is not None


def validate_nif(nif: Optional[str]) -> str:
    """Check a NIF typed at the lookup step. Raises before any query is made."""
    if not nif:
        raise SaleValidationError("Insira um NIF", field="client_nif")
    if not is_valid_nif(nif):
        raise SaleValidationError("O NIF deve ter 9 dígitos numéricos", field="client_nif")
    return nif


def _blank(value: Optional[str]) -> bool:
    return not value or not value.strip()


def sale_violations(draft: SaleDraft, operator_ids: Optional[Iterable[str]] = None) -> List[Violation]:
    """
    Evaluate every submission rule against a draft.

    Args:
        draft (SaleDraft): The sale being edited.
        operator_ids (Iterable[str], optional): Operators offered for the
            draft's partner, category and energy type. When given, an
            operator outside this set is reported like a missing one.

    Returns:
        List[Violation]: Violated rules in precedence order; the first one is
        the message shown to the user.
    """
    violations = []
    if _blank(draft.client_name):
        violations.append(Violation("client_name", "O nome do cliente é obrigatório"))
    if draft.category is None:
        violations.append(Violation("category", "Selecione a categoria"))
    if _blank(draft.partner_id):
        violations.append(Violation("partner_id", "Selecione um parceiro"))
    if _blank(draft.operator_id) or (operator_ids is not None and draft.operator_id not in set(operator_ids)):
        violations.append(Violation("operator_id", "Selecione uma operadora"))
    if _blank(draft.client_phone) and _blank(draft.client_email):
        violations.append(Violation("client_phone", "Preencha pelo menos um contacto (telefone ou email)"))
    if _blank(draft.client_nif):
        violations.append(Violation("client_nif", "O NIF é obrigatório"))
    elif not is_valid_nif(draft.client_nif):
        violations.append(Violation("client_nif", "O NIF deve ter 9 dígitos numéricos"))

    address = draft.address
    if _blank(address.street_address) or _blank(address.postal_code) or _blank(address.city):
        violations.append(Violation(
            "address",
            "Todos os campos de morada são obrigatórios (Rua, Código Postal, Localidade)",
        ))
    elif not is_valid_postal_code(address.postal_code):
        violations.append(Violation("postal_code", "Código postal deve estar no formato 0000-000"))

    energy = draft.energy
    if energy is not None:
        if energy.energy_type is None:
            violations.append(Violation("energy_type", "Selecione o tipo de energia"))
        else:
            if energy.needs_electricity and (_blank(energy.cpe) or _blank(energy.potencia)):
                violations.append(Violation("cpe", "CPE e Potência são obrigatórios para eletricidade"))
            if energy.needs_gas and (_blank(energy.cui) or _blank(energy.escalao)):
                violations.append(Violation("cui", "CUI e Escalão são obrigatórios para gás"))
    return violations


def validate_sale_draft(draft: SaleDraft, operator_ids: Optional[Iterable[str]] = None) -> SaleDraft:
    violations = sale_violations(draft, operator_ids)
    if violations:
        first = violations[0]
        logger.info(f"[{draft.client_nif}] Sale draft rejected on {first.field}: {first.message}")
        raise SaleValidationError(first.message, field=first.field)
    return draft


def _parse_float(value) -> float:
    try:
        number = float(str(value).replace(",", "."))
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _parse_int(value) -> int:
    # Inteiro inicial, como "12 meses" ou "12.0"
    match = LEADING_INT_PATTERN.match(str(value) if value is not None else "")
    if match is None:
        return 0
    return max(0, int(match.group(0)))


def _or_none(value: Optional[str]) -> Optional[str]:
    return None if _blank(value) else value


def build_sale_payload(draft: SaleDraft) -> SalePayload:
    """Turn a validated draft into the record sent to the store."""
    energy = draft.energy
    telecom = draft.telecom if draft.services_applicable else None
    return SalePayload(
        client_nif=draft.client_nif,
        client_name=draft.client_name,
        client_email=_or_none(draft.client_email),
        client_phone=_or_none(draft.client_phone),
        street_address=draft.address.street_address,
        postal_code=draft.address.postal_code,
        city=draft.address.city,
        category=draft.category,
        sale_type=draft.sale_type if draft.category in ("energia", "telecomunicacoes") else None,
        partner_id=draft.partner_id,
        operator_id=draft.operator_id,
        seller_id=None if draft.seller_id in (NO_SELLER, "") else draft.seller_id,
        status=STATUS_NEGOTIATING,
        contract_value=_parse_float(draft.contract_value),
        loyalty_months=_parse_int(draft.loyalty_months),
        notes=_or_none(draft.notes),
        energy_type=energy.energy_type if energy else None,
        cpe=_or_none(energy.cpe) if energy and energy.needs_electricity else None,
        potencia=_or_none(energy.potencia) if energy and energy.needs_electricity else None,
        cui=_or_none(energy.cui) if energy and energy.needs_gas else None,
        escalao=_or_none(energy.escalao) if energy and energy.needs_gas else None,
        services_tv=telecom.services_tv if telecom else False,
        services_net=telecom.services_net if telecom else False,
        services_lr=telecom.services_lr if telecom else False,
        services_moveis_count=telecom.services_moveis_count if telecom else 0,
    )
