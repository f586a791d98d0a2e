from .decode import decode_specs
from .models import OperationKind, OperationSpec
from .parse import parse_specs
from .schema import Schema, get_schema, register_schema
from .validation import validate_operation_spec

__all__ = [
    "OperationKind",
    "OperationSpec",
    "Schema",
    "decode_specs",
    "get_schema",
    "parse_specs",
    "register_schema",
    "validate_operation_spec",
]
