"""Document store access - interface, Firestore adapter and path helpers"""

from .base import (
    Cursor,
    Document,
    DocumentStore,
    Transaction,
    WriteOp,
    delete_field,
    increment,
    set_field,
)

__all__ = [
    "Cursor",
    "Document",
    "DocumentStore",
    "Transaction",
    "WriteOp",
    "delete_field",
    "increment",
    "set_field",
]
