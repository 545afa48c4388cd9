"""
Source row decoding.

Raw rows come out of the ERP as loosely-typed mappings (column alias ->
value). They are validated here into the typed record models; a row that
fails validation is logged and dropped, never raised to the caller.
"""

from typing import Any, Iterable, Iterator, Mapping

import structlog
from pydantic import ValidationError

from .records import RECORD_TYPES, EntityKind, SourceRecord

logger = structlog.get_logger(__name__)

# Fields worth echoing back when a row is rejected
_IDENTITY_FIELDS = ("ref", "document_id", "document_number", "line_no", "name")


def _row_hint(raw: Mapping[str, Any]) -> dict:
    return {k: str(raw[k]) for k in _IDENTITY_FIELDS if raw.get(k) is not None}


def decode_rows(kind: EntityKind, raw_rows: Iterable[Mapping[str, Any]]) -> Iterator[SourceRecord]:
    """
    Lazily validate raw source rows into record models.

    Args:
        kind: Entity kind the rows belong to
        raw_rows: Iterable of mappings keyed by record field name

    Yields:
        Decoded record for every row that validates
    """
    model = RECORD_TYPES[kind]
    seen = 0
    dropped = 0

    for raw in raw_rows:
        seen += 1
        try:
            record = model.model_validate(raw)
        except ValidationError as e:
            dropped += 1
            logger.warning(
                "Dropping malformed source row",
                kind=kind.value,
                row=_row_hint(raw),
                errors=[f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()],
            )
            continue
        yield record

    if dropped:
        logger.warning(
            "Malformed source rows dropped",
            kind=kind.value,
            dropped=dropped,
            seen=seen,
        )
