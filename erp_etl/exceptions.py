"""
ETL Exceptions

Errors raised by the source and warehouse collaborators. Row- and
record-level handlers in the orchestration core catch these; only
connection failures and unexpected errors reach the run boundary.
"""


class EtlError(Exception):
    """Base class for all ETL errors"""


class SourceConnectionError(EtlError):
    """The ERP automation session could not be created or connected"""


class SourceQueryError(EtlError):
    """A source query could not be executed or its result unloaded"""

    def __init__(self, kind: str, message: str):
        self.kind = kind
        super().__init__(f"{kind}: {message}")


class MissingCustomerKeyError(EtlError, ValueError):
    """A contract was submitted for key resolution without its customer's surrogate key"""

    def __init__(self, contract_ref):
        self.contract_ref = contract_ref
        super().__init__(
            f"customer_key must be set on contract {contract_ref} before resolving its surrogate key"
        )
