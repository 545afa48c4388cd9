"""
Unit Tests - Source Readers
"""
from datetime import date, datetime
from decimal import Decimal
from uuid import uuid4

import pytest
from structlog.testing import capture_logs

from erp_etl.config.settings import SourceSettings
from erp_etl.exceptions import SourceConnectionError, SourceQueryError
from erp_etl.source import ComSourceReader, MockSourceReader, create_source_reader
from erp_etl.source.com_reader import QUERIES
from erp_etl.source.mock_reader import build_reference_dataset
from erp_etl.source.records import EntityKind, OrganizationRecord, SaleRow


# =============================================================================
# COM doubles
# =============================================================================

class FakeRef:
    def __init__(self, value=None):
        self.value = value

    def IsEmpty(self):
        return self.value is None

    def UUID(self):
        return self.value


class FakeSelection:
    def __init__(self, rows, fail_after=None):
        self._rows = list(rows)
        self._index = -1
        self._fail_after = fail_after

    def Next(self):
        if self._fail_after is not None and self._index + 1 >= self._fail_after:
            raise OSError("connection reset")
        self._index += 1
        if self._index >= len(self._rows):
            return False
        for name, value in self._rows[self._index].items():
            setattr(self, name, value)
        return True


class FakeQuery:
    def __init__(self, connection):
        self.connection = connection
        self.Text = ""

    def Execute(self):
        self.connection.texts.append(self.Text)
        if self.connection.fail_query:
            raise OSError("syntax error")
        connection = self.connection

        class Result:
            def Choose(self):
                return FakeSelection(connection.rows, connection.fail_after)

        return Result()


class FakeConnection:
    def __init__(self, rows=(), fail_query=False, fail_after=None):
        self.rows = rows
        self.fail_query = fail_query
        self.fail_after = fail_after
        self.texts = []

    def NewObject(self, name):
        assert name == "Query"
        return FakeQuery(self)

    def String(self, value):
        return str(value)


def com_reader(connection: FakeConnection) -> ComSourceReader:
    reader = ComSourceReader(prog_id="V83.COMConnector", connection_string='File="C:\\erp";')
    reader._connection = connection
    return reader


class TestComSourceReader:
    """Tests for ComSourceReader against COM doubles"""

    def test_every_kind_has_a_query(self):
        assert set(QUERIES) == set(EntityKind)
        for text, columns, ref_columns in QUERIES.values():
            for column in columns:
                assert f" AS {column}" in text
            assert set(ref_columns) <= set(columns)

    def test_rows_are_converted_and_decoded(self):
        org_ref = uuid4()
        connection = FakeConnection(rows=[
            {"ref": FakeRef(org_ref), "code": "000000001", "name": "Northwind", "full_name": "Northwind LLC"},
            {"ref": FakeRef(None), "code": "000000002", "name": "Empty ref", "full_name": None},
        ])

        with capture_logs():
            records = list(com_reader(connection).organizations())

        assert records == [
            OrganizationRecord(ref=org_ref, code="000000001", name="Northwind", full_name="Northwind LLC")
        ]
        assert "Catalog.Организации" in connection.texts[0]

    def test_empty_dates_and_refs_become_none(self):
        row = {
            "document_id": FakeRef(uuid4()),
            "document_number": "SL-1",
            "line_no": 1,
            "doc_date": datetime(2024, 3, 1, 9, 0),
            "customer_ref": FakeRef(uuid4()),
            "organization_ref": FakeRef(uuid4()),
            "contract_ref": FakeRef(None),
            "product_ref": FakeRef(uuid4()),
            "quantity": 3,
            "price": Decimal("5.00"),
            "amount": Decimal("15.00"),
            "vat_rate_name": "20%",
            "vat_amount": Decimal("3.00"),
            "total_amount": Decimal("18.00"),
            "currency_code": "643",
        }

        sales = list(com_reader(FakeConnection(rows=[row])).sale_rows())

        assert len(sales) == 1
        assert isinstance(sales[0], SaleRow)
        assert sales[0].contract_ref is None
        assert sales[0].doc_date == date(2024, 3, 1)

    def test_empty_erp_date_is_none(self):
        contract = {
            "ref": FakeRef(uuid4()),
            "code": "1",
            "name": "Open-ended",
            "customer_ref": FakeRef(uuid4()),
            "start_date": datetime(2024, 1, 1),
            "end_date": datetime(1, 1, 1),
        }

        contracts = list(com_reader(FakeConnection(rows=[contract])).contracts())

        assert contracts[0].end_date is None

    def test_query_failure_raises(self):
        reader = com_reader(FakeConnection(fail_query=True))

        with pytest.raises(SourceQueryError, match="customers"):
            list(reader.customers())

    def test_selection_failure_raises(self):
        rows = [{"ref": FakeRef(uuid4()), "code": "1", "name": "A", "full_name": None}] * 3
        reader = com_reader(FakeConnection(rows=rows, fail_after=2))

        with pytest.raises(SourceQueryError, match="after 2 rows"):
            list(reader.organizations())

    def test_fetch_without_connection_raises(self):
        reader = ComSourceReader(prog_id="V83.COMConnector", connection_string="")

        with pytest.raises(SourceQueryError):
            list(reader.products())

    def test_connect_failure_returns_false(self, monkeypatch):
        reader = ComSourceReader(prog_id="V83.COMConnector", connection_string="")

        def refuse(self):
            raise SourceConnectionError("ERP rejected the connection string")

        monkeypatch.setattr(ComSourceReader, "_open_session", refuse)

        with capture_logs() as logs:
            assert reader.connect() is False

        assert logs[0]["event"] == "Failed to connect to ERP"
        assert reader._connection is None

    def test_connect_failure_leaves_release_to_caller(self, monkeypatch):
        reader = ComSourceReader(prog_id="V83.COMConnector", connection_string="")
        connector = object()

        def dispatch_then_refuse(self):
            self._connector = connector
            raise SourceConnectionError("ERP rejected the connection string")

        monkeypatch.setattr(ComSourceReader, "_open_session", dispatch_then_refuse)

        with capture_logs() as logs:
            assert reader.connect() is False
        assert reader._connector is connector
        assert not [log for log in logs if log["event"] == "Releasing COM objects"]

        reader.release()
        assert reader._connector is None

    def test_release_is_idempotent(self):
        reader = com_reader(FakeConnection())

        reader.release()
        reader.release()

        assert reader._connection is None


class TestMockSourceReader:
    """Tests for the mock ERP"""

    def test_reference_dataset_shape(self, reference_data):
        sizes = {kind: len(rows) for kind, rows in reference_data.items()}

        assert sizes == {
            EntityKind.ORGANIZATIONS: 2,
            EntityKind.CUSTOMERS: 4,
            EntityKind.PRODUCTS: 4,
            EntityKind.CONTRACTS: 3,
            EntityKind.SALES: 4,
            EntityKind.PAYMENTS: 3,
        }
        assert [c["is_deleted"] for c in reference_data[EntityKind.CUSTOMERS]] == [False, False, True, False]

    def test_contracts_reference_active_customers(self, reference_data):
        active = {c["ref"] for c in reference_data[EntityKind.CUSTOMERS] if not c["is_deleted"]}

        assert {c["customer_ref"] for c in reference_data[EntityKind.CONTRACTS]} == active

    def test_dataset_is_deterministic(self):
        assert build_reference_dataset(7) == build_reference_dataset(7)
        assert build_reference_dataset(7) != build_reference_dataset(8)

    def test_fetch_is_restartable(self, mock_source):
        mock_source.connect()

        first = [r.ref for r in mock_source.customers()]
        second = [r.ref for r in mock_source.customers()]

        assert first == second
        assert len(first) == 4

    def test_fetch_requires_connection(self, mock_source):
        with pytest.raises(SourceQueryError):
            list(mock_source.organizations())

    def test_malformed_override_rows_dropped(self):
        reader = MockSourceReader(overrides={EntityKind.ORGANIZATIONS: [
            {"ref": str(uuid4()), "name": "Valid"},
            {"ref": "garbage", "name": "Invalid"},
        ]})
        reader.connect()

        assert [o.name for o in reader.organizations()] == ["Valid"]

    def test_fail_connect(self):
        reader = MockSourceReader(fail_connect=True)

        assert reader.connect() is False
        assert reader.connect_calls == 1

    def test_fail_on_kind(self):
        reader = MockSourceReader(fail_on=EntityKind.SALES)
        reader.connect()

        assert len(list(reader.organizations())) == 2
        with pytest.raises(SourceQueryError):
            reader.sale_rows()


class TestCreateSourceReader:
    """Tests for backend selection"""

    def test_mock_backend(self):
        reader = create_source_reader(SourceSettings(backend="mock", mock_seed=3))

        assert isinstance(reader, MockSourceReader)

    def test_com_backend(self):
        reader = create_source_reader(SourceSettings(backend="com", connection_string='Srvr="erp";Ref="trade";'))

        assert isinstance(reader, ComSourceReader)
        assert reader.connection_string == 'Srvr="erp";Ref="trade";'
