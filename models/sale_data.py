# models/sale_data.py
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Annotated, List, Literal, Optional, Union

Category = Literal["energia", "telecomunicacoes", "paineis_solares"]
SaleType = Literal["nova_instalacao", "refid", "mudanca_casa"]
EnergyType = Literal["eletricidade", "gas", "dual"]

CATEGORIES = ("energia", "telecomunicacoes", "paineis_solares")
SALE_TYPES = ("nova_instalacao", "refid", "mudanca_casa")
ENERGY_TYPES = ("eletricidade", "gas", "dual")
SALE_STATUSES = ("em_negociacao", "pendente", "ativo", "perdido", "anulado")

SALE_TYPE_LABELS = {
    "nova_instalacao": "Nova Instalação",
    "refid": "Refid",
    "mudanca_casa": "Mudança de Casa",
}

STATUS_NEGOTIATING = "em_negociacao"
NO_SELLER = "none"
MAX_MOVEIS = 5


def clamp_moveis(value) -> int:
    try:
        count = int(value)
    except (TypeError, ValueError):
        count = 0
    return min(MAX_MOVEIS, max(0, count))


class Address(BaseModel):
    model_config = ConfigDict(frozen=True)

    street_address: str = Field("", description="Rua / morada")
    postal_code: str = Field("", description="Código postal no formato 0000-000")
    city: str = Field("", description="Localidade")

    def differs_from(self, other: "Address") -> bool:
        return (
            self.street_address != other.street_address
            or self.postal_code != other.postal_code
            or self.city != other.city
        )


class OperatorRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    allowed_sale_types: List[str] = Field(default_factory=list)

    @field_validator("allowed_sale_types", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return value or []


class SellerRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""
    active: bool = False


class PartnerRef(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    name: str = ""


class Operator(BaseModel):
    model_config = ConfigDict(extra="ignore", frozen=True)

    id: str
    name: str = ""
    partner_id: Optional[str] = None
    categories: List[str] = Field(default_factory=list)
    allowed_sale_types: List[str] = Field(default_factory=list)
    active: bool = True
    commission_visible_to_bo: bool = False

    @field_validator("categories", "allowed_sale_types", mode="before")
    @classmethod
    def _none_is_empty(cls, value):
        return value or []


class PriorContract(BaseModel):
    """A sale already on record for a NIF, with its joined operator, seller and partner."""

    model_config = ConfigDict(extra="ignore", frozen=True, populate_by_name=True)

    id: str
    client_nif: str = ""
    client_name: Optional[str] = None
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    street_address: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None
    category: Optional[str] = None
    sale_type: Optional[str] = None
    partner_id: Optional[str] = None
    operator_id: Optional[str] = None
    seller_id: Optional[str] = None
    loyalty_months: Optional[int] = None
    loyalty_end_date: Optional[str] = None
    energy_type: Optional[str] = None
    cpe: Optional[str] = None
    potencia: Optional[str] = None
    cui: Optional[str] = None
    escalao: Optional[str] = None
    created_at: Optional[str] = None
    operator: Optional[OperatorRef] = Field(None, alias="operators")
    seller: Optional[SellerRef] = Field(None, alias="sellers")
    partner: Optional[PartnerRef] = Field(None, alias="partners")

    @property
    def address(self) -> Address:
        return Address(
            street_address=self.street_address or "",
            postal_code=self.postal_code or "",
            city=self.city or "",
        )

    def operator_allows(self, sale_type: str) -> bool:
        return self.operator is not None and sale_type in self.operator.allowed_sale_types


class EnergyDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["energia"] = "energia"
    energy_type: Optional[EnergyType] = None
    cpe: str = ""
    potencia: str = ""
    cui: str = ""
    escalao: str = ""

    @property
    def needs_electricity(self) -> bool:
        return self.energy_type in ("eletricidade", "dual")

    @property
    def needs_gas(self) -> bool:
        return self.energy_type in ("gas", "dual")


class TelecomDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["telecomunicacoes"] = "telecomunicacoes"
    services_tv: bool = False
    services_net: bool = False
    services_lr: bool = False
    services_moveis_count: int = 0

    @field_validator("services_moveis_count", mode="before")
    @classmethod
    def _clamp_moveis(cls, value):
        return clamp_moveis(value)


class SolarDetails(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["paineis_solares"] = "paineis_solares"


CategoryDetails = Annotated[
    Union[EnergyDetails, TelecomDetails, SolarDetails],
    Field(discriminator="kind"),
]

DETAILS_BY_CATEGORY = {
    "energia": EnergyDetails,
    "telecomunicacoes": TelecomDetails,
    "paineis_solares": SolarDetails,
}

ENERGY_FIELDS = ("energy_type", "cpe", "potencia", "cui", "escalao")
SERVICE_FIELDS = ("services_tv", "services_net", "services_lr", "services_moveis_count")


class SaleDraft(BaseModel):
    """The sale being edited in an intake session.

    Text inputs are kept as the user typed them; numbers are only parsed when
    the draft is turned into a SalePayload. Category specific fields live in
    ``details`` so that a solar draft cannot carry energy or telecom values.
    """

    model_config = ConfigDict(frozen=True)

    client_nif: str = ""
    client_name: str = ""
    client_email: str = ""
    client_phone: str = ""
    address: Address = Field(default_factory=Address)
    details: Optional[CategoryDetails] = None
    sale_type: Optional[SaleType] = None
    partner_id: str = ""
    operator_id: str = ""
    seller_id: str = NO_SELLER
    contract_value: str = ""
    loyalty_months: str = ""
    notes: str = ""

    @property
    def category(self) -> Optional[str]:
        return self.details.kind if self.details is not None else None

    @property
    def energy(self) -> Optional[EnergyDetails]:
        return self.details if isinstance(self.details, EnergyDetails) else None

    @property
    def telecom(self) -> Optional[TelecomDetails]:
        return self.details if isinstance(self.details, TelecomDetails) else None

    @property
    def services_applicable(self) -> bool:
        return self.telecom is not None and self.sale_type in ("nova_instalacao", "mudanca_casa")


class SalePayload(BaseModel):
    """Normalized record inserted into the ``sales`` table."""

    client_nif: str
    client_name: str
    client_email: Optional[str] = None
    client_phone: Optional[str] = None
    street_address: str
    postal_code: str
    city: str
    category: Category
    sale_type: Optional[SaleType] = None
    partner_id: str
    operator_id: str
    seller_id: Optional[str] = None
    status: str = STATUS_NEGOTIATING
    contract_value: float = 0
    loyalty_months: int = 0
    notes: Optional[str] = None
    energy_type: Optional[EnergyType] = None
    cpe: Optional[str] = None
    potencia: Optional[str] = None
    cui: Optional[str] = None
    escalao: Optional[str] = None
    services_tv: bool = False
    services_net: bool = False
    services_lr: bool = False
    services_moveis_count: int = 0
