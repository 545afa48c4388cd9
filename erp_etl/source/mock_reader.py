"""
Mock Source Reader

Deterministic in-process ERP source for dry runs and tests. The reference
data set is a small trading company:
- 2 organizations
- 4 customers (the third one marked deleted)
- 4 products
- 3 contracts, each owned by an active customer
- 4 sale lines, one of them pointing at a product missing from the catalog
- 3 customer payments, one of them quoting an unknown contract

Rows are produced as raw mappings and run through the same decoding as the
COM reader, so malformed overrides are dropped exactly like real ones.
"""

import random
import uuid
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

import structlog
from faker import Faker

from erp_etl.exceptions import SourceQueryError

from .base import SourceReader
from .decoding import decode_rows
from .records import EntityKind, SourceRecord

logger = structlog.get_logger(__name__)

RawRows = List[Dict[str, Any]]

VAT_RATE_NAME = "20%"
VAT_RATE = Decimal("0.20")


def _money(value: float) -> Decimal:
    return Decimal(str(value)).quantize(Decimal("0.01"))


def build_reference_dataset(seed: int = 42) -> Dict[EntityKind, RawRows]:
    """
    Generate the reference data set.

    The same seed always yields the same natural keys, names and amounts.

    Args:
        seed: Seed for Faker and the amount generator

    Returns:
        Raw source rows keyed by entity kind
    """
    fake = Faker()
    fake.seed_instance(seed)
    rng = random.Random(seed)

    def new_ref() -> str:
        return str(uuid.UUID(int=rng.getrandbits(128), version=4))

    organizations = [
        {
            "ref": new_ref(),
            "code": f"ORG-{i:03d}",
            "name": company,
            "full_name": f"{company} {fake.company_suffix()}",
        }
        for i, company in enumerate((fake.company() for _ in range(2)), start=1)
    ]

    customers = []
    for i in range(1, 5):
        company = fake.company()
        customers.append({
            "ref": new_ref(),
            "code": f"CUST-{i:05d}",
            "name": company,
            "full_name": f"{company} {fake.company_suffix()}",
            "tin": fake.numerify("##########"),
            "kpp": fake.numerify("#########"),
            "entity_type": "Legal entity",
            "is_deleted": i == 3,
        })

    products = []
    for i in range(1, 5):
        word = fake.word().capitalize()
        products.append({
            "ref": new_ref(),
            "code": f"ITEM-{i:05d}",
            "name": word,
            "full_name": f"{word} {fake.word()}",
            "sku": fake.bothify("??-####").upper(),
            "unit_of_measure": "pcs",
            "product_type": "Goods",
            "product_group": fake.word().capitalize(),
            "default_vat_rate": VAT_RATE_NAME,
        })

    active_customers = [c for c in customers if not c["is_deleted"]]
    contracts = [
        {
            "ref": new_ref(),
            "code": f"CTR-{i:04d}",
            "name": f"Supply agreement No. {i}",
            "customer_ref": customer["ref"],
            "start_date": datetime(2024, 1, 1),
            "end_date": datetime(2025, 12, 31),
        }
        for i, customer in enumerate(active_customers, start=1)
    ]

    unknown_product_ref = new_ref()
    sale_plan = [
        # (document, line, customer, product ref, organization, contract)
        (0, 1, active_customers[0], products[0]["ref"], organizations[0], contracts[0]),
        (0, 2, active_customers[0], products[1]["ref"], organizations[0], contracts[0]),
        (1, 1, active_customers[1], unknown_product_ref, organizations[1], contracts[1]),
        (2, 1, active_customers[2], products[3]["ref"], organizations[1], None),
    ]

    sales = []
    sale_doc_ids = [new_ref(), new_ref(), new_ref()]
    for doc_index, line_no, customer, product_ref, org, contract in sale_plan:
        quantity = Decimal(rng.randint(1, 20))
        price = _money(rng.uniform(10, 500))
        amount = quantity * price
        vat_amount = (amount * VAT_RATE).quantize(Decimal("0.01"))
        sales.append({
            "document_id": sale_doc_ids[doc_index],
            "document_number": f"SL-{doc_index + 1:06d}",
            "line_no": line_no,
            "doc_date": datetime(2024, 3, 1, 10, 30) + timedelta(days=doc_index),
            "customer_ref": customer["ref"],
            "organization_ref": org["ref"],
            "contract_ref": contract["ref"] if contract else "",
            "product_ref": product_ref,
            "quantity": quantity,
            "price": price,
            "amount": amount,
            "vat_rate_name": VAT_RATE_NAME,
            "vat_amount": vat_amount,
            "total_amount": amount + vat_amount,
            "currency_code": "643",
        })

    unknown_contract_ref = new_ref()
    payment_plan = [
        (active_customers[0], organizations[0], contracts[0]["ref"]),
        (active_customers[1], organizations[1], unknown_contract_ref),
        (active_customers[2], organizations[0], None),
    ]
    payments = [
        {
            "document_id": new_ref(),
            "document_number": f"PAY-{n:06d}",
            "payment_date": datetime(2024, 3, 15) + timedelta(days=n),
            "organization_ref": org["ref"],
            "amount": _money(rng.uniform(100, 5000)),
            "currency_code": "643",
            "payer_ref": customer["ref"],
            "contract_ref": contract_ref,
        }
        for n, (customer, org, contract_ref) in enumerate(payment_plan, start=1)
    ]

    return {
        EntityKind.ORGANIZATIONS: organizations,
        EntityKind.CUSTOMERS: customers,
        EntityKind.PRODUCTS: products,
        EntityKind.CONTRACTS: contracts,
        EntityKind.SALES: sales,
        EntityKind.PAYMENTS: payments,
    }


class MockSourceReader(SourceReader):
    """
    In-memory ERP source.

    Args:
        seed: Seed for the reference data set
        overrides: Replacement rows for any entity kind (raw mappings or records)
        fail_connect: Make connect() report failure
        fail_on: Entity kind whose fetch raises SourceQueryError
    """

    name = "mock"

    def __init__(
        self,
        seed: int = 42,
        overrides: Optional[Mapping[EntityKind, Iterable[Any]]] = None,
        fail_connect: bool = False,
        fail_on: Optional[EntityKind] = None,
    ):
        self.rows: Dict[EntityKind, List[Any]] = dict(build_reference_dataset(seed))
        for kind, rows in (overrides or {}).items():
            self.rows[EntityKind(kind)] = list(rows)

        self.fail_connect = fail_connect
        self.fail_on = fail_on
        self.connected = False

        # Call accounting for tests
        self.connect_calls = 0
        self.release_calls = 0
        self.fetch_calls: List[EntityKind] = []

    def connect(self) -> bool:
        self.connect_calls += 1
        if self.fail_connect:
            logger.error("Failed to connect to ERP", source=self.name)
            return False
        self.connected = True
        logger.info("Connected to ERP", source=self.name)
        return True

    def fetch(self, kind: EntityKind) -> Iterator[SourceRecord]:
        self.fetch_calls.append(kind)
        if not self.connected:
            raise SourceQueryError(kind.value, "not connected")
        if kind == self.fail_on:
            raise SourceQueryError(kind.value, "connection to the infobase was lost")

        logger.info("Reading from ERP", kind=kind.value, source=self.name)
        return decode_rows(kind, iter(self.rows.get(kind, [])))

    def release(self) -> None:
        self.release_calls += 1
        self.connected = False
