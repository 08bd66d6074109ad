# flows/intake_controller.py
import uuid
from typing import Dict, List
from flows.sale_intake import (
    AddressChangeResolved, AddressResolution, BranchCancelled, BranchChosen, ContractsFound,
    FieldChanged, IntakeFlow, IntakeState, IntakeStep, LookupFailed, OperatorsLoaded,
    ReferenceSelected, RenewalLoaded, SubmissionFailed, SubmissionSucceeded, SubmitRequested,
    TaxIdSubmitted, transition,
)
from models.sale_data import Operator, PriorContract
from tools.catalog_tools import get_operators_by_partner
from tools.sales_tools import (
    SALES_BY_NIF_SELECT, cancel_sale_loyalty_alerts, create_sale, get_sales_by_nif,
)
from utils.errors import PersistenceError, RecordLookupError, SaleValidationError
from utils.validation import build_sale_payload
from utils.logging_setup import setup_logging

logger = setup_logging()


class IntakeController:
    """
    Runs one sale intake session against a record store.

    Each public coroutine feeds one user action through ``transition`` and
    performs the I/O that goes with it. Domain errors are raised to the
    caller after the state has recorded them.
    """

    def __init__(self, store, session_id: str = None, owner_id: str = None):
        self.store = store
        self.session_id = session_id or str(uuid.uuid4())
        self.owner_id = owner_id
        self.state = IntakeState()

    def dispatch(self, event) -> IntakeState:
        self.state = transition(self.state, event)
        logger.debug(f"[{self.session_id}] {type(event).__name__} -> {self.state.step.value}")
        return self.state

    def available_operators(self) -> List[Operator]:
        return self.state.available_operators

    async def check_nif(self, tax_id: str) -> IntakeState:
        self.dispatch(TaxIdSubmitted(tax_id=tax_id or ""))
        if self.state.step is not IntakeStep.LOOKING_UP:
            logger.info(f"[{self.session_id}] NIF rejected: {self.state.error}")
            raise SaleValidationError(self.state.error, field="client_nif")
        try:
            contracts = await get_sales_by_nif(self.store, tax_id)
        except RecordLookupError:
            self.dispatch(LookupFailed(message="Erro ao verificar NIF"))
            raise
        return self.dispatch(ContractsFound(contracts=tuple(contracts)))

    async def choose_branch(self, flow: IntakeFlow) -> IntakeState:
        self.dispatch(BranchChosen(flow=flow))
        if self.state.step is IntakeStep.ADDRESS_SELECTION and len(self.state.prior_contracts) == 1:
            return await self.select_reference(self.state.prior_contracts[0].id)
        return self.state

    def cancel_branch(self) -> IntakeState:
        return self.dispatch(BranchCancelled())

    async def select_reference(self, contract_id: str) -> IntakeState:
        """
        Use a prior contract as the base of a Move-House or Renewal sale.

        The referenced contract's loyalty fields are reset right away, even if
        this draft is never submitted. Choosing the same contract again resets
        them again.
        """
        next_state = transition(self.state, ReferenceSelected(contract_id=contract_id))
        await cancel_sale_loyalty_alerts(self.store, contract_id)
        self.state = next_state
        logger.info(f"[{self.session_id}] Reference {contract_id} selected for {next_state.flow.value}")
        for warning in next_state.warnings:
            logger.warning(f"[{self.session_id}] {warning}")
        if not self.state.operators:
            await self.load_operators()
        return self.state

    async def start_renewal_from(self, sale_id: str) -> IntakeState:
        rows = await self.store.find("sales", {"id": sale_id}, select=SALES_BY_NIF_SELECT)
        if not rows:
            logger.error(f"[{self.session_id}] Sale {sale_id} not found for renewal")
            raise RecordLookupError("Erro ao carregar dados da venda original")
        self.dispatch(RenewalLoaded(contract=PriorContract(**rows[0])))
        await self.load_operators()
        return self.state

    async def load_operators(self) -> IntakeState:
        partner_id = self.state.draft.partner_id
        operators = await get_operators_by_partner(self.store, partner_id) if partner_id else []
        return self.dispatch(OperatorsLoaded(partner_id=partner_id, operators=tuple(operators)))

    async def change_field(self, field: str, value) -> IntakeState:
        previous_partner = self.state.draft.partner_id
        self.dispatch(FieldChanged(field=field, value=value))
        if self.state.draft.partner_id != previous_partner:
            await self.load_operators()
        return self.state

    async def submit(self) -> IntakeState:
        self.dispatch(SubmitRequested())
        if self.state.step is IntakeStep.FORM_EDITING:
            raise SaleValidationError(self.state.error, field=self.state.error_field)
        if self.state.step is IntakeStep.ADDRESS_CHANGE_CHECK:
            logger.info(f"[{self.session_id}] Address changed on a renewal, waiting for confirmation")
            return self.state
        return await self._persist()

    async def resolve_address_change(self, resolution: AddressResolution) -> IntakeState:
        self.dispatch(AddressChangeResolved(resolution=resolution))
        if self.state.step is IntakeStep.SUBMITTING:
            return await self._persist()
        return self.state

    async def _persist(self) -> IntakeState:
        payload = build_sale_payload(self.state.draft)
        try:
            record: Dict = await create_sale(self.store, payload)
        except PersistenceError as e:
            self.dispatch(SubmissionFailed(message=e.message))
            raise
        return self.dispatch(SubmissionSucceeded(record=record))
