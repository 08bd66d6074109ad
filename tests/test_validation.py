"""
Testes para as regras de validação e normalização de vendas
"""
import pytest
from models.sale_data import Address, EnergyDetails, SaleDraft, SolarDetails, TelecomDetails
from utils.errors import SaleValidationError
from utils.validation import (
    build_sale_payload, is_valid_nif, is_valid_postal_code, sale_violations, validate_nif, validate_sale_draft,
)


def complete_draft(**overrides):
    data = dict(
        client_nif="123456789",
        client_name="Ana Silva",
        client_email="ana@example.com",
        client_phone="912345678",
        address=Address(street_address="Rua A", postal_code="1000-100", city="Lisboa"),
        details=TelecomDetails(),
        sale_type="nova_instalacao",
        partner_id="p1",
        operator_id="op-meo",
    )
    data.update(overrides)
    return SaleDraft(**data)


def first_field(draft):
    violations = sale_violations(draft)
    return violations[0].field if violations else None


def test_postal_code_format():
    """Testa o formato 0000-000 do código postal"""
    assert is_valid_postal_code("1234-567")
    assert not is_valid_postal_code("1234567")
    assert not is_valid_postal_code("12345-67")
    assert not is_valid_postal_code("")


@pytest.mark.parametrize("nif", ["12345678", "1234567890", "12345678a", "123 45678", "", "１２３４５６７８９"])
def test_invalid_nif_rejected(nif):
    """Testa NIFs que não têm exatamente 9 dígitos"""
    assert not is_valid_nif(nif)
    with pytest.raises(SaleValidationError):
        validate_nif(nif)


def test_valid_nif_accepted():
    """Testa NIF válido"""
    assert validate_nif("123456789") == "123456789"


def test_complete_draft_passes():
    """Testa que um rascunho completo não tem violações"""
    draft = complete_draft()
    assert sale_violations(draft) == []
    assert validate_sale_draft(draft) is draft


def test_empty_draft_reports_name_first():
    """Testa que o nome é a primeira regra avaliada"""
    violations = sale_violations(SaleDraft())
    assert violations[0].field == "client_name"
    assert [v.field for v in violations][:4] == ["client_name", "category", "partner_id", "operator_id"]


def test_rule_precedence():
    """Testa a ordem das regras removendo um campo de cada vez"""
    assert first_field(complete_draft(client_name="  ")) == "client_name"
    assert first_field(complete_draft(details=None)) == "category"
    assert first_field(complete_draft(partner_id="")) == "partner_id"
    assert first_field(complete_draft(operator_id="")) == "operator_id"
    assert first_field(complete_draft(client_phone="", client_email="")) == "client_phone"
    assert first_field(complete_draft(client_nif="")) == "client_nif"
    assert first_field(complete_draft(client_nif="12345")) == "client_nif"
    assert first_field(complete_draft(address=Address(street_address="Rua A", postal_code="1000-100"))) == "address"
    assert first_field(complete_draft(address=Address(street_address="Rua A", postal_code="1000100", city="Lisboa"))) == "postal_code"


def test_partner_checked_before_contact():
    """Testa que faltando parceiro e contacto, o parceiro é reportado"""
    draft = complete_draft(partner_id="", client_phone="", client_email="")
    with pytest.raises(SaleValidationError) as exc:
        validate_sale_draft(draft)
    assert exc.value.field == "partner_id"


def test_one_contact_is_enough():
    """Testa que telefone ou email basta"""
    assert sale_violations(complete_draft(client_email="")) == []
    assert sale_violations(complete_draft(client_phone="")) == []


def test_energy_requires_energy_type():
    """Testa que energia exige tipo de energia"""
    draft = complete_draft(details=EnergyDetails(), operator_id="op-dual")
    assert first_field(draft) == "energy_type"


def test_electricity_fields_required():
    """Testa CPE e potência para eletricidade"""
    draft = complete_draft(details=EnergyDetails(energy_type="eletricidade", cpe="PT0001"), operator_id="op-dual")
    with pytest.raises(SaleValidationError) as exc:
        validate_sale_draft(draft)
    assert "CPE" in exc.value.message


def test_dual_checks_electricity_then_gas():
    """Testa que dual exige os campos dos dois tipos, eletricidade primeiro"""
    draft = complete_draft(details=EnergyDetails(energy_type="dual"), operator_id="op-dual")
    assert [v.field for v in sale_violations(draft)] == ["cpe", "cui"]

    draft = complete_draft(
        details=EnergyDetails(energy_type="dual", cpe="PT0001", potencia="6.9"), operator_id="op-dual",
    )
    assert first_field(draft) == "cui"

    draft = complete_draft(
        details=EnergyDetails(energy_type="dual", cpe="PT0001", potencia="6.9", cui="PT1600", escalao="Escalão 1"),
        operator_id="op-dual",
    )
    assert sale_violations(draft) == []


def test_gas_does_not_need_cpe():
    """Testa que gás não exige CPE"""
    draft = complete_draft(details=EnergyDetails(energy_type="gas", cui="PT1600", escalao="Escalão 2"), operator_id="op-gas")
    assert sale_violations(draft) == []


def test_moveis_count_is_clamped():
    """Testa o limite de 0 a 5 para móveis"""
    assert TelecomDetails(services_moveis_count=7).services_moveis_count == 5
    assert TelecomDetails(services_moveis_count=-3).services_moveis_count == 0
    assert TelecomDetails(services_moveis_count="2").services_moveis_count == 2


def test_payload_normalization():
    """Testa a normalização do payload enviado para a base de dados"""
    draft = complete_draft(
        client_email="",
        seller_id="none",
        contract_value="abc",
        loyalty_months="24",
        notes="",
        details=TelecomDetails(services_tv=True, services_moveis_count=3),
    )
    payload = build_sale_payload(draft)
    assert payload.status == "em_negociacao"
    assert payload.client_email is None
    assert payload.seller_id is None
    assert payload.contract_value == 0
    assert payload.loyalty_months == 24
    assert payload.notes is None
    assert payload.services_tv is True
    assert payload.services_moveis_count == 3
    assert payload.energy_type is None


def test_payload_parses_decimal_value():
    """Testa conversão do valor do contrato"""
    payload = build_sale_payload(complete_draft(contract_value="49,90", seller_id="u-seller"))
    assert payload.contract_value == pytest.approx(49.9)
    assert payload.seller_id == "u-seller"


def test_services_dropped_for_refid():
    """Testa que serviços só são gravados em NI e MC"""
    draft = complete_draft(sale_type="refid", details=TelecomDetails(services_net=True, services_moveis_count=2))
    payload = build_sale_payload(draft)
    assert payload.services_net is False
    assert payload.services_moveis_count == 0


def test_solar_payload_has_no_sale_type():
    """Testa que painéis solares não levam tipo de venda nem campos de energia"""
    payload = build_sale_payload(complete_draft(details=SolarDetails(), sale_type="refid", operator_id="op-sun"))
    assert payload.category == "paineis_solares"
    assert payload.sale_type is None
    assert payload.cpe is None


def test_gas_payload_drops_electricity_fields():
    """Testa que campos de eletricidade não vão no payload de gás"""
    draft = complete_draft(
        details=EnergyDetails(energy_type="gas", cpe="PT0001", cui="PT1600", escalao="Escalão 1"),
        operator_id="op-gas",
    )
    payload = build_sale_payload(draft)
    assert payload.energy_type == "gas"
    assert payload.cpe is None
    assert payload.cui == "PT1600"


def test_operator_outside_offered_list():
    """Testa operadora fora da lista oferecida, na mesma posição que a operadora em falta"""
    draft = complete_draft(client_phone="", client_email="")
    assert [v.field for v in sale_violations(draft, ["op-dual"])][:2] == ["operator_id", "client_phone"]
    assert sale_violations(complete_draft(), ["op-meo"]) == []
    with pytest.raises(SaleValidationError) as exc:
        validate_sale_draft(complete_draft(), [])
    assert exc.value.field == "operator_id"


def test_non_finite_contract_value_is_zero():
    """Testa que valores infinitos ou NaN são gravados como 0"""
    assert build_sale_payload(complete_draft(contract_value="1e400")).contract_value == 0
    assert build_sale_payload(complete_draft(contract_value="nan")).contract_value == 0
    assert build_sale_payload(complete_draft(contract_value="-inf")).contract_value == 0


@pytest.mark.parametrize("text,months", [("12.0", 12), ("12 meses", 12), (" 24", 24), ("-3", 0), ("meses", 0), ("", 0)])
def test_loyalty_months_leading_integer(text, months):
    """Testa leitura dos meses de fidelização a partir do inteiro inicial"""
    assert build_sale_payload(complete_draft(loyalty_months=text)).loyalty_months == months
