"""Template value model.

Python objects are used directly as template values. This package adds the
engine-specific pieces (``Undefined``, ``IndexMap``, ``Kwargs``, ``Object``)
and the operations the VM performs on values (arithmetic, comparison,
containment, item and attribute access).
"""

from jinjavm.utils.html import Markup
from jinjavm.value.callables import BoxedFunction, call_host, call_value, pass_state
from jinjavm.value.core import (
    InvalidValue,
    Object,
    ObjectKind,
    Undefined,
    UndefinedType,
    ValueKind,
    dumps_json,
    is_true,
    to_str,
    try_iter,
    value_kind,
    value_repr,
)
from jinjavm.value.indexmap import IndexMap, KeyRef, Kwargs

__all__ = [
    "BoxedFunction",
    "IndexMap",
    "InvalidValue",
    "KeyRef",
    "Kwargs",
    "Markup",
    "Object",
    "ObjectKind",
    "Undefined",
    "UndefinedType",
    "ValueKind",
    "call_host",
    "call_value",
    "dumps_json",
    "is_true",
    "pass_state",
    "to_str",
    "try_iter",
    "value_kind",
    "value_repr",
]
