# Overview: Generates collision-free string identifiers for ledger rows.

from __future__ import annotations

import uuid


STOCK_ENTRY_PREFIX = "inv"
EXPENSE_PREFIX = "exp"


def new_identifier(prefix: str) -> str:
    """Human-readable, prefixed, UUID4-backed id, e.g. "inv-3f2b...". """
    return f"{prefix}-{uuid.uuid4().hex}"
