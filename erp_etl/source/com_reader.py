"""
COM Source Reader

Reads the ERP infobase through its client-automation (COM) connector using
pywin32 late binding. One connection is opened per run; each fetch runs a
single query and walks its result with a forward-only selection, so rows
are produced lazily and never unloaded into memory as a whole.

Windows only: win32com is imported when the session is opened, so the rest
of the package stays importable on any platform.
"""

from typing import Any, Dict, Iterator, List, Optional, Tuple

import structlog

from erp_etl.exceptions import SourceConnectionError, SourceQueryError

from .base import SourceReader
from .decoding import decode_rows
from .records import EntityKind, SourceRecord

logger = structlog.get_logger(__name__)


# =============================================================================
# QUERIES
# =============================================================================
# Column aliases match the record field names. Reference columns are returned
# as ERP references and converted to UUID strings on read.

ORGANIZATIONS_QUERY = """
SELECT
    Orgs.Ref AS ref,
    Orgs.Code AS code,
    Orgs.Description AS name,
    Orgs.НаименованиеПолное AS full_name
FROM
    Catalog.Организации AS Orgs
"""

CUSTOMERS_QUERY = """
SELECT
    Cust.Ref AS ref,
    Cust.Code AS code,
    Cust.Description AS name,
    Cust.НаименованиеПолное AS full_name,
    Cust.ИНН AS tin,
    Cust.КПП AS kpp,
    PRESENTATION(Cust.ЮрФизЛицо) AS entity_type,
    Cust.DeletionMark AS is_deleted
FROM
    Catalog.Контрагенты AS Cust
"""

PRODUCTS_QUERY = """
SELECT
    Items.Ref AS ref,
    Items.Code AS code,
    Items.Description AS name,
    Items.НаименованиеПолное AS full_name,
    Items.Артикул AS sku,
    Items.ЕдиницаИзмерения.Description AS unit_of_measure,
    PRESENTATION(Items.ВидНоменклатуры) AS product_type,
    Items.Parent.Description AS product_group,
    PRESENTATION(Items.СтавкаНДС) AS default_vat_rate
FROM
    Catalog.Номенклатура AS Items
WHERE
    NOT Items.IsFolder
"""

CONTRACTS_QUERY = """
SELECT
    Contracts.Ref AS ref,
    Contracts.Code AS code,
    Contracts.Description AS name,
    Contracts.Owner AS customer_ref,
    Contracts.ДатаНачала AS start_date,
    Contracts.ДатаОкончания AS end_date
FROM
    Catalog.ДоговорыКонтрагентов AS Contracts
"""

SALES_QUERY = """
SELECT
    Lines.Ref AS document_id,
    Lines.Ref.Number AS document_number,
    Lines.LineNumber AS line_no,
    Lines.Ref.Date AS doc_date,
    Lines.Ref.Контрагент AS customer_ref,
    Lines.Ref.Организация AS organization_ref,
    Lines.Ref.ДоговорКонтрагента AS contract_ref,
    Lines.Номенклатура AS product_ref,
    Lines.Количество AS quantity,
    Lines.Цена AS price,
    Lines.Сумма AS amount,
    PRESENTATION(Lines.СтавкаНДС) AS vat_rate_name,
    Lines.СуммаНДС AS vat_amount,
    Lines.Сумма + Lines.СуммаНДС AS total_amount,
    Lines.Ref.ВалютаДокумента.Code AS currency_code
FROM
    Document.РеализацияТоваровУслуг.Товары AS Lines
WHERE
    Lines.Ref.Posted
"""

PAYMENTS_QUERY = """
SELECT
    Pay.Ref AS document_id,
    Pay.Number AS document_number,
    Pay.Date AS payment_date,
    Pay.Организация AS organization_ref,
    Pay.СуммаДокумента AS amount,
    Pay.ВалютаДокумента.Code AS currency_code,
    Pay.Контрагент AS payer_ref,
    Pay.ДоговорКонтрагента AS contract_ref
FROM
    Document.ПоступлениеДенежныхСредств AS Pay
WHERE
    Pay.ВидОперации IN (
        VALUE(Enum.ВидыОперацийПоступлениеДенежныхСредств.ОплатаПокупателя),
        VALUE(Enum.ВидыОперацийПоступлениеДенежныхСредств.ПоступлениеОтПродажПоПлатежнымКартамИБанковскимКредитам)
    )
"""

# kind -> (query text, selected columns, reference columns)
QUERIES: Dict[EntityKind, Tuple[str, List[str], Tuple[str, ...]]] = {
    EntityKind.ORGANIZATIONS: (
        ORGANIZATIONS_QUERY,
        ["ref", "code", "name", "full_name"],
        ("ref",),
    ),
    EntityKind.CUSTOMERS: (
        CUSTOMERS_QUERY,
        ["ref", "code", "name", "full_name", "tin", "kpp", "entity_type", "is_deleted"],
        ("ref",),
    ),
    EntityKind.PRODUCTS: (
        PRODUCTS_QUERY,
        ["ref", "code", "name", "full_name", "sku", "unit_of_measure",
         "product_type", "product_group", "default_vat_rate"],
        ("ref",),
    ),
    EntityKind.CONTRACTS: (
        CONTRACTS_QUERY,
        ["ref", "code", "name", "customer_ref", "start_date", "end_date"],
        ("ref", "customer_ref"),
    ),
    EntityKind.SALES: (
        SALES_QUERY,
        ["document_id", "document_number", "line_no", "doc_date", "customer_ref",
         "organization_ref", "contract_ref", "product_ref", "quantity", "price",
         "amount", "vat_rate_name", "vat_amount", "total_amount", "currency_code"],
        ("document_id", "customer_ref", "organization_ref", "contract_ref", "product_ref"),
    ),
    EntityKind.PAYMENTS: (
        PAYMENTS_QUERY,
        ["document_id", "document_number", "payment_date", "organization_ref",
         "amount", "currency_code", "payer_ref", "contract_ref"],
        ("document_id", "organization_ref", "payer_ref", "contract_ref"),
    ),
}


# The ERP returns "empty dates" as 0001-01-01
_EMPTY_DATE_YEAR = 1


class ComSourceReader(SourceReader):
    """
    ERP source over the COM automation connector.

    Example:
        reader = ComSourceReader(prog_id="V83.COMConnector",
                                 connection_string='Srvr="erp01";Ref="trade";')
        if reader.connect():
            for customer in reader.customers():
                ...
        reader.release()
    """

    name = "com"

    def __init__(self, prog_id: str, connection_string: str):
        self.prog_id = prog_id
        self.connection_string = connection_string
        self._connector: Optional[Any] = None
        self._connection: Optional[Any] = None

    # -------------------------------------------------------------------------
    # Session lifecycle
    # -------------------------------------------------------------------------

    def _open_session(self) -> Any:
        import win32com.client

        logger.info("Creating COM connector", prog_id=self.prog_id)
        try:
            self._connector = win32com.client.Dispatch(self.prog_id)
        except Exception as e:
            raise SourceConnectionError(f"COM class {self.prog_id!r} is not available: {e}") from e

        result = self._connector.Connect(self.connection_string)

        # The application object reports success as a boolean and stays the
        # context; the external connector returns a separate connection object.
        if result is True:
            return self._connector
        if not result:
            raise SourceConnectionError("ERP rejected the connection string")
        return result

    def connect(self) -> bool:
        if self._connection is not None:
            return True
        try:
            self._connection = self._open_session()
        except Exception as e:
            logger.error(
                "Failed to connect to ERP",
                prog_id=self.prog_id,
                error=str(e),
                exc_info=not isinstance(e, SourceConnectionError),
            )
            return False

        logger.info("Connected to ERP", prog_id=self.prog_id)
        return True

    def release(self) -> None:
        if self._connection is None and self._connector is None:
            return
        logger.debug("Releasing COM objects", prog_id=self.prog_id)
        # Dropping the last references lets pywin32 Release() the objects
        self._connection = None
        self._connector = None

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def _uuid_of(self, ref: Any) -> Optional[str]:
        if ref is None or ref.IsEmpty():
            return None
        return str(self._connection.String(ref.UUID()))

    def _convert(self, column: str, value: Any, ref_columns: Tuple[str, ...]) -> Any:
        if value is None:
            return None
        if column in ref_columns:
            return self._uuid_of(value)
        if hasattr(value, "year") and value.year == _EMPTY_DATE_YEAR:
            return None
        return value

    def _raw_rows(self, kind: EntityKind) -> Iterator[Dict[str, Any]]:
        if self._connection is None:
            raise SourceQueryError(kind.value, "not connected")

        text, columns, ref_columns = QUERIES[kind]
        try:
            query = self._connection.NewObject("Query")
            query.Text = text
            selection = query.Execute().Choose()
        except Exception as e:
            raise SourceQueryError(kind.value, str(e)) from e

        index = 0
        while True:
            try:
                has_next = selection.Next()
            except Exception as e:
                raise SourceQueryError(kind.value, f"selection aborted after {index} rows: {e}") from e
            if not has_next:
                break
            index += 1
            try:
                row = {
                    column: self._convert(column, getattr(selection, column), ref_columns)
                    for column in columns
                }
            except Exception as e:
                logger.warning("Could not read source row", kind=kind.value, row_number=index, error=str(e))
                continue
            yield row

        logger.info("Source query finished", kind=kind.value, rows=index)

    def fetch(self, kind: EntityKind) -> Iterator[SourceRecord]:
        logger.info("Reading from ERP", kind=kind.value)
        return decode_rows(kind, self._raw_rows(kind))
