"""
LexLedger - Shared model helpers
"""

import uuid
from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.orm import mapped_column

# Monetary columns: 18 digits, 2 decimals, returned as Decimal
Money = Numeric(18, 2, asdecimal=True)


def new_id() -> str:
    """Return a new opaque entity identifier."""
    return str(uuid.uuid4())


def uuid_pk():
    return mapped_column(String(36), primary_key=True, default=new_id)


ZERO = Decimal("0.00")
