"""
Serialization utilities for the multi-pair decision engine.

JSON encoding for Decimal, Enum, and the frozen dataclasses that make up a
Decision trace, so audit logs carry the exact numbers that were used.

Usage:
    from shared.serialization_utils import DecisionEncoder
    json.dumps(decision, cls=DecisionEncoder)
"""

import dataclasses
import json
from decimal import Decimal
from enum import Enum
from typing import Any


class DecisionEncoder(json.JSONEncoder):
    """
    JSON encoder for decision-engine types.

    Decimals are emitted as strings to keep full precision; enums as their
    value; dataclasses as dicts (recursively).
    """

    def default(self, obj: Any) -> Any:
        if isinstance(obj, Decimal):
            return str(obj)
        if isinstance(obj, Enum):
            return obj.value
        if dataclasses.is_dataclass(obj) and not isinstance(obj, type):
            return {f.name: getattr(obj, f.name) for f in dataclasses.fields(obj)}
        if isinstance(obj, (set, frozenset)):
            return sorted(obj)
        return super().default(obj)


def to_json(obj: Any) -> str:
    """Serialize any decision-engine value to a JSON string."""
    return json.dumps(obj, cls=DecisionEncoder)
