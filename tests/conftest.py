"""
Fixtures partilhadas: um record store em memória e dados de catálogo
"""
import copy
import pytest
from utils.errors import PersistenceError, RecordLookupError


class FakeStore:
    """Record store em memória com a mesma interface do SupabaseStore"""

    def __init__(self, tables=None):
        self.tables = {name: [dict(row) for row in rows] for name, rows in (tables or {}).items()}
        self.calls = []
        self.failures = {}
        self._ids = 0

    def fail(self, method, collection, exc):
        self.failures[(method, collection)] = exc

    def _check(self, method, collection):
        exc = self.failures.get((method, collection))
        if exc is not None:
            raise exc

    def calls_to(self, method, collection=None):
        return [c for c in self.calls if c[0] == method and (collection is None or c[1] == collection)]

    async def find(self, collection, filters=None, select="*", order_by=None, descending=False):
        self.calls.append(("find", collection, filters))
        self._check("find", collection)
        rows = [
            copy.deepcopy(row) for row in self.tables.get(collection, [])
            if all(row.get(k) == v for k, v in (filters or {}).items())
        ]
        if order_by:
            rows.sort(key=lambda r: str(r.get(order_by) or ""), reverse=descending)
        return rows

    async def insert(self, collection, record):
        self.calls.append(("insert", collection, record))
        self._check("insert", collection)
        self._ids += 1
        row = {"id": f"{collection}-{self._ids}", "created_at": f"2026-10-19T10:00:{self._ids:02d}", **record}
        self.tables.setdefault(collection, []).append(row)
        return copy.deepcopy(row)

    async def update(self, collection, record_id, patch):
        self.calls.append(("update", collection, record_id, patch))
        self._check("update", collection)
        for row in self.tables.get(collection, []):
            if row.get("id") == record_id:
                row.update(patch)
                return copy.deepcopy(row)
        raise PersistenceError("Registo não encontrado")

    async def delete(self, collection, record_id):
        self.calls.append(("delete", collection, record_id))
        self._check("delete", collection)
        self.tables[collection] = [r for r in self.tables.get(collection, []) if r.get("id") != record_id]


OPERATORS = [
    {"id": "op-dual", "name": "EDP", "partner_id": "p1", "active": True,
     "categories": ["energia_eletricidade", "energia_gas"],
     "allowed_sale_types": ["nova_instalacao", "refid", "mudanca_casa"]},
    {"id": "op-gas", "name": "Galp Gás", "partner_id": "p1", "active": True,
     "categories": ["energia_gas"], "allowed_sale_types": ["nova_instalacao"]},
    {"id": "op-meo", "name": "MEO", "partner_id": "p1", "active": True,
     "categories": ["telecomunicacoes"], "allowed_sale_types": ["nova_instalacao", "refid", "mudanca_casa"]},
    {"id": "op-sun", "name": "SolarPT", "partner_id": "p1", "active": True,
     "categories": ["paineis_solares"], "allowed_sale_types": []},
    {"id": "op-old", "name": "Antiga", "partner_id": "p1", "active": False,
     "categories": ["telecomunicacoes"], "allowed_sale_types": ["refid"]},
    {"id": "op-nos", "name": "NOS", "partner_id": "p2", "active": True,
     "categories": ["telecomunicacoes"], "allowed_sale_types": ["nova_instalacao"]},
]

PARTNERS = [
    {"id": "p1", "name": "Parceiro Lisboa", "active": True},
    {"id": "p2", "name": "Parceiro Porto", "active": True},
]

USERS = [
    {"id": "u-admin", "name": "Admin", "role": "admin", "active": True},
    {"id": "u-bo", "name": "Backoffice", "role": "backoffice", "active": True},
    {"id": "u-seller", "name": "Vendedor", "role": "vendedor", "active": True},
]


def prior_sale(**overrides):
    """Venda anterior tal como vem da pesquisa por NIF (com operadora, vendedor e parceiro)"""
    sale = {
        "id": "sale-1",
        "client_nif": "123456789",
        "client_name": "Ana Silva",
        "client_email": "ana@example.com",
        "client_phone": "912345678",
        "street_address": "Rua A",
        "postal_code": "1000-100",
        "city": "Lisboa",
        "category": "telecomunicacoes",
        "sale_type": "nova_instalacao",
        "partner_id": "p1",
        "operator_id": "op-meo",
        "seller_id": "u-seller",
        "loyalty_months": 24,
        "loyalty_end_date": "2027-01-01",
        "status": "ativo",
        "created_at": "2025-01-10T10:00:00",
        "operators": {"id": "op-meo", "name": "MEO", "allowed_sale_types": ["nova_instalacao", "refid", "mudanca_casa"]},
        "sellers": {"id": "u-seller", "name": "Vendedor", "active": True},
        "partners": {"id": "p1", "name": "Parceiro Lisboa"},
    }
    sale.update(overrides)
    return sale


@pytest.fixture
def store():
    return FakeStore({
        "partners": PARTNERS,
        "operators": OPERATORS,
        "users": USERS,
        "sales": [prior_sale()],
    })


@pytest.fixture
def empty_store():
    return FakeStore({"partners": PARTNERS, "operators": OPERATORS, "users": USERS, "sales": []})


@pytest.fixture
def lookup_error():
    return RecordLookupError("connection refused")
