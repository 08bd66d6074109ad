# flows/sale_intake.py
"""
Sale intake state machine.

The intake session is an immutable IntakeState; every user action or service
reply is an event, and ``transition(state, event)`` returns the next state
without doing any I/O. Lookups, the loyalty reset on the referenced contract
and the final insert are performed by IntakeController around these
transitions.

Steps:
    entering_tax_id -> looking_up -> branch_choice | form_editing
    branch_choice -> form_editing (new sale) | address_selection (move house, renewal)
    address_selection -> form_editing
    form_editing -> address_change_check (renewal with edited address) | submitting
    address_change_check -> submitting | form_editing
    submitting -> done | failed
"""
from enum import Enum
from typing import Dict, Optional, Tuple, Union
from pydantic import BaseModel, ConfigDict
from models.sale_data import (
    Address, EnergyDetails, Operator, PriorContract, SaleDraft, TelecomDetails,
    DETAILS_BY_CATEGORY, ENERGY_FIELDS, ENERGY_TYPES, SALE_TYPES, SALE_TYPE_LABELS,
    SERVICE_FIELDS, NO_SELLER, clamp_moveis,
)
from tools.catalog_tools import filter_operators
from utils.errors import IntakeStateError, SaleValidationError
from utils.validation import is_valid_nif, sale_violations


class IntakeStep(str, Enum):
    ENTERING_TAX_ID = "entering_tax_id"
    LOOKING_UP = "looking_up"
    BRANCH_CHOICE = "branch_choice"
    ADDRESS_SELECTION = "address_selection"
    FORM_EDITING = "form_editing"
    ADDRESS_CHANGE_CHECK = "address_change_check"
    SUBMITTING = "submitting"
    DONE = "done"
    FAILED = "failed"


class IntakeFlow(str, Enum):
    NEW_CLIENT = "novo_cliente"
    NEW_SALE = "nova_venda"
    MOVE_HOUSE = "mudanca_casa"
    RENEWAL = "refid"


class AddressResolution(str, Enum):
    KEEP_RENEWAL = "manter_refid"
    RECLASSIFY_MOVE_HOUSE = "mudanca_casa"
    CANCEL = "cancelar"


FLOW_SALE_TYPE = {
    IntakeFlow.MOVE_HOUSE: "mudanca_casa",
    IntakeFlow.RENEWAL: "refid",
}

EDITABLE_STEPS = (IntakeStep.FORM_EDITING, IntakeStep.FAILED)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)


class TaxIdSubmitted(_Event):
    tax_id: str


class ContractsFound(_Event):
    contracts: Tuple[PriorContract, ...] = ()


class LookupFailed(_Event):
    message: str


class BranchChosen(_Event):
    flow: IntakeFlow


class BranchCancelled(_Event):
    pass


class ReferenceSelected(_Event):
    contract_id: str


class RenewalLoaded(_Event):
    contract: PriorContract


class FieldChanged(_Event):
    field: str
    value: Union[bool, int, float, str, None] = None


class OperatorsLoaded(_Event):
    partner_id: str = ""
    operators: Tuple[Operator, ...] = ()


class SubmitRequested(_Event):
    pass


class AddressChangeResolved(_Event):
    resolution: AddressResolution


class SubmissionSucceeded(_Event):
    record: Dict


class SubmissionFailed(_Event):
    message: str


class IntakeState(BaseModel):
    model_config = ConfigDict(frozen=True)

    step: IntakeStep = IntakeStep.ENTERING_TAX_ID
    tax_id: str = ""
    prior_contracts: Tuple[PriorContract, ...] = ()
    flow: Optional[IntakeFlow] = None
    reference_id: Optional[str] = None
    draft: SaleDraft = SaleDraft()
    original_address: Optional[Address] = None
    operators: Tuple[Operator, ...] = ()
    warnings: Tuple[str, ...] = ()
    error: Optional[str] = None
    error_field: Optional[str] = None
    created_sale: Optional[Dict] = None

    def contract(self, contract_id: str) -> Optional[PriorContract]:
        return next((c for c in self.prior_contracts if c.id == contract_id), None)

    @property
    def available_operators(self):
        energy = self.draft.energy
        return filter_operators(self.operators, self.draft.category, energy.energy_type if energy else None)

    @property
    def address_changed(self) -> bool:
        return self.original_address is not None and self.draft.address.differs_from(self.original_address)


def _details_from_contract(contract: PriorContract):
    if contract.category == "energia":
        return EnergyDetails(
            energy_type=contract.energy_type if contract.energy_type in ENERGY_TYPES else None,
            cpe=contract.cpe or "",
            potencia=contract.potencia or "",
            cui=contract.cui or "",
            escalao=contract.escalao or "",
        )
    details_cls = DETAILS_BY_CATEGORY.get(contract.category)
    return details_cls() if details_cls else None


def _loyalty_text(contract: PriorContract) -> str:
    return str(contract.loyalty_months) if contract.loyalty_months is not None else ""


def new_sale_draft(tax_id: str, latest: PriorContract) -> SaleDraft:
    return SaleDraft(
        client_nif=tax_id,
        client_name=latest.client_name or "",
        client_email=latest.client_email or "",
        client_phone=latest.client_phone or "",
    )


def reference_draft(tax_id: str, contract: PriorContract, flow: IntakeFlow) -> Tuple[SaleDraft, Tuple[str, ...]]:
    """Draft for a Move-House or Renewal sale built on a prior contract, plus any warnings."""
    target = FLOW_SALE_TYPE[flow]
    warnings = ()
    if not contract.operator_allows(target):
        operator_name = contract.operator.name if contract.operator else "selecionada"
        warnings = (f"A operadora {operator_name} não permite vendas do tipo {SALE_TYPE_LABELS[target]}",)
    seller_active = contract.seller is not None and contract.seller.active
    draft = SaleDraft(
        client_nif=tax_id,
        client_name=contract.client_name or "",
        client_email=contract.client_email or "",
        client_phone=contract.client_phone or "",
        address=Address() if flow is IntakeFlow.MOVE_HOUSE else contract.address,
        details=_details_from_contract(contract),
        sale_type=target if contract.operator_allows(target) else None,
        partner_id=contract.partner_id or "",
        operator_id=contract.operator_id or "",
        seller_id=contract.seller_id if seller_active and contract.seller_id else NO_SELLER,
        loyalty_months=_loyalty_text(contract),
    )
    return draft, warnings


def renewal_draft(contract: PriorContract) -> SaleDraft:
    return SaleDraft(
        client_nif=contract.client_nif,
        client_name=contract.client_name or "",
        client_email=contract.client_email or "",
        client_phone=contract.client_phone or "",
        address=contract.address,
        details=_details_from_contract(contract),
        sale_type="refid",
        partner_id=contract.partner_id or "",
        operator_id=contract.operator_id or "",
        loyalty_months=_loyalty_text(contract),
    )


def _text(field: str, value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool) or not isinstance(value, (str, int, float)):
        raise SaleValidationError(f"Valor inválido para {field}", field=field)
    return str(value)


def _prune_operator(draft: SaleDraft, operators) -> SaleDraft:
    if not draft.operator_id:
        return draft
    energy = draft.energy
    valid = filter_operators(operators, draft.category, energy.energy_type if energy else None)
    if any(op.id == draft.operator_id for op in valid):
        return draft
    return draft.model_copy(update={"operator_id": ""})


def apply_field_change(draft: SaleDraft, operators, field: str, value) -> SaleDraft:
    """Return ``draft`` with one form field changed and its dependent fields reset."""
    if field in ("street_address", "postal_code", "city"):
        return draft.model_copy(update={"address": draft.address.model_copy(update={field: _text(field, value)})})

    if field == "category":
        category = _text(field, value) or None
        if category is not None and category not in DETAILS_BY_CATEGORY:
            raise SaleValidationError(f"Categoria inválida: {category}", field=field)
        if category == draft.category:
            return draft
        update = {"details": DETAILS_BY_CATEGORY[category]() if category else None}
        if category == "paineis_solares":
            update["sale_type"] = None
        return _prune_operator(draft.model_copy(update=update), operators)

    if field == "sale_type":
        sale_type = _text(field, value) or None
        if sale_type is not None and sale_type not in SALE_TYPES:
            raise SaleValidationError(f"Tipo de venda inválido: {sale_type}", field=field)
        if draft.category == "paineis_solares":
            sale_type = None
        return draft.model_copy(update={"sale_type": sale_type})

    if field in ENERGY_FIELDS:
        energy = draft.energy
        if energy is None:
            raise IntakeStateError(f"O campo {field} só se aplica à categoria energia")
        if field == "energy_type":
            energy_type = _text(field, value) or None
            if energy_type is not None and energy_type not in ENERGY_TYPES:
                raise SaleValidationError(f"Tipo de energia inválido: {energy_type}", field=field)
            changed = draft.model_copy(update={"details": energy.model_copy(update={"energy_type": energy_type})})
            return _prune_operator(changed, operators)
        return draft.model_copy(update={"details": energy.model_copy(update={field: _text(field, value)})})

    if field in SERVICE_FIELDS:
        telecom = draft.telecom
        if telecom is None:
            raise IntakeStateError(f"O campo {field} só se aplica à categoria telecomunicações")
        new_value = clamp_moveis(value) if field == "services_moveis_count" else bool(value)
        return draft.model_copy(update={"details": telecom.model_copy(update={field: new_value})})

    if field == "partner_id":
        partner_id = _text(field, value)
        if partner_id == draft.partner_id:
            return draft
        return draft.model_copy(update={"partner_id": partner_id, "operator_id": ""})

    if field == "seller_id":
        return draft.model_copy(update={"seller_id": _text(field, value) or NO_SELLER})

    if field in ("client_nif", "client_name", "client_email", "client_phone",
                 "operator_id", "contract_value", "loyalty_months", "notes"):
        return draft.model_copy(update={field: _text(field, value)})

    raise SaleValidationError(f"Campo desconhecido: {field}", field=field)


def _reject(state: IntakeState, event) -> IntakeStateError:
    return IntakeStateError(f"{type(event).__name__} não é permitido no passo {state.step.value}")


def transition(state: IntakeState, event) -> IntakeState:
    step = state.step

    if isinstance(event, OperatorsLoaded):
        # Resposta atrasada de outro parceiro
        if event.partner_id != state.draft.partner_id:
            return state
        return state.model_copy(update={"operators": tuple(event.operators)})

    if isinstance(event, TaxIdSubmitted):
        if step is not IntakeStep.ENTERING_TAX_ID:
            raise _reject(state, event)
        if not event.tax_id:
            return state.model_copy(update={"error": "Insira um NIF", "error_field": "client_nif"})
        if not is_valid_nif(event.tax_id):
            return state.model_copy(update={
                "tax_id": event.tax_id,
                "error": "O NIF deve ter 9 dígitos numéricos",
                "error_field": "client_nif",
            })
        return state.model_copy(update={
            "step": IntakeStep.LOOKING_UP, "tax_id": event.tax_id, "error": None, "error_field": None,
        })

    if isinstance(event, RenewalLoaded):
        if step is not IntakeStep.ENTERING_TAX_ID:
            raise _reject(state, event)
        contract = event.contract
        return IntakeState(
            step=IntakeStep.FORM_EDITING,
            tax_id=contract.client_nif,
            prior_contracts=(contract,),
            flow=IntakeFlow.RENEWAL,
            reference_id=contract.id,
            draft=renewal_draft(contract),
            original_address=contract.address,
        )

    if isinstance(event, (ContractsFound, LookupFailed)):
        if step is not IntakeStep.LOOKING_UP:
            raise _reject(state, event)
        if isinstance(event, LookupFailed):
            return state.model_copy(update={"step": IntakeStep.ENTERING_TAX_ID, "error": event.message})
        if not event.contracts:
            return state.model_copy(update={
                "step": IntakeStep.FORM_EDITING,
                "flow": IntakeFlow.NEW_CLIENT,
                "prior_contracts": (),
                "draft": SaleDraft(client_nif=state.tax_id),
            })
        return state.model_copy(update={"step": IntakeStep.BRANCH_CHOICE, "prior_contracts": tuple(event.contracts)})

    if isinstance(event, BranchChosen):
        if step is not IntakeStep.BRANCH_CHOICE or event.flow is IntakeFlow.NEW_CLIENT:
            raise _reject(state, event)
        if event.flow is IntakeFlow.NEW_SALE:
            return state.model_copy(update={
                "step": IntakeStep.FORM_EDITING,
                "flow": IntakeFlow.NEW_SALE,
                "draft": new_sale_draft(state.tax_id, state.prior_contracts[0]),
            })
        return state.model_copy(update={"step": IntakeStep.ADDRESS_SELECTION, "flow": event.flow})

    if isinstance(event, BranchCancelled):
        if step is IntakeStep.BRANCH_CHOICE:
            return IntakeState(tax_id=state.tax_id)
        if step is IntakeStep.ADDRESS_SELECTION:
            return state.model_copy(update={"step": IntakeStep.BRANCH_CHOICE, "flow": None})
        raise _reject(state, event)

    if isinstance(event, ReferenceSelected):
        # Também é possível trocar de referência depois de o formulário estar preenchido
        if state.flow not in FLOW_SALE_TYPE or (step is not IntakeStep.ADDRESS_SELECTION and step not in EDITABLE_STEPS):
            raise _reject(state, event)
        contract = state.contract(event.contract_id)
        if contract is None:
            raise IntakeStateError(f"Venda {event.contract_id} não pertence ao NIF {state.tax_id}")
        draft, warnings = reference_draft(state.tax_id, contract, state.flow)
        return state.model_copy(update={
            "step": IntakeStep.FORM_EDITING,
            "reference_id": contract.id,
            "draft": draft,
            "original_address": contract.address,
            "operators": state.operators if contract.partner_id == state.draft.partner_id else (),
            "warnings": warnings,
            "error": None,
            "error_field": None,
        })

    if isinstance(event, FieldChanged):
        if step not in EDITABLE_STEPS:
            raise _reject(state, event)
        draft = apply_field_change(state.draft, state.operators, event.field, event.value)
        update = {"draft": draft}
        if draft.partner_id != state.draft.partner_id:
            update["operators"] = ()
        return state.model_copy(update=update)

    if isinstance(event, SubmitRequested):
        if step not in EDITABLE_STEPS:
            raise _reject(state, event)
        violations = sale_violations(state.draft, [op.id for op in state.available_operators])
        if violations:
            return state.model_copy(update={
                "step": IntakeStep.FORM_EDITING,
                "error": violations[0].message,
                "error_field": violations[0].field,
            })
        next_step = IntakeStep.SUBMITTING
        if state.draft.sale_type == "refid" and state.address_changed:
            next_step = IntakeStep.ADDRESS_CHANGE_CHECK
        return state.model_copy(update={"step": next_step, "error": None, "error_field": None})

    if isinstance(event, AddressChangeResolved):
        if step is not IntakeStep.ADDRESS_CHANGE_CHECK:
            raise _reject(state, event)
        if event.resolution is AddressResolution.CANCEL:
            return state.model_copy(update={"step": IntakeStep.FORM_EDITING})
        draft = state.draft
        if event.resolution is AddressResolution.RECLASSIFY_MOVE_HOUSE:
            draft = draft.model_copy(update={"sale_type": "mudanca_casa"})
        return state.model_copy(update={"step": IntakeStep.SUBMITTING, "draft": draft})

    if isinstance(event, (SubmissionSucceeded, SubmissionFailed)):
        if step is not IntakeStep.SUBMITTING:
            raise _reject(state, event)
        if isinstance(event, SubmissionFailed):
            return state.model_copy(update={"step": IntakeStep.FAILED, "error": event.message, "error_field": None})
        return state.model_copy(update={"step": IntakeStep.DONE, "created_sale": event.record, "error": None})

    raise IntakeStateError(f"Evento desconhecido: {type(event).__name__}")
