"""Document store interface used by the pipeline"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

T = TypeVar("T")

SET = "set"
INCREMENT = "increment"
DELETE = "delete"


@dataclass(frozen=True)
class WriteOp:
    """One field operation on one document. Dotted fields address nested maps."""

    path: str
    field: str
    op: str
    value: Any = None


def set_field(path: str, field_name: str, value: Any) -> WriteOp:
    return WriteOp(path, field_name, SET, value)


def increment(path: str, field_name: str, amount: float = 1) -> WriteOp:
    return WriteOp(path, field_name, INCREMENT, amount)


def delete_field(path: str, field_name: str) -> WriteOp:
    return WriteOp(path, field_name, DELETE)


@dataclass(frozen=True)
class Document:
    path: str
    data: dict = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    @property
    def segments(self) -> list[str]:
        return self.path.split("/")


@dataclass(frozen=True)
class Cursor:
    """Position of the last record seen: its order-by value and its path"""

    value: Any
    path: str


# (field, operator, value), operators follow Firestore: "==", "<=", "<", ">=", ">"
Filter = tuple[str, str, Any]


def group_ops(ops: Iterable[WriteOp]) -> dict[str, list[WriteOp]]:
    """Group write operations by document path, keeping their order"""
    grouped: dict[str, list[WriteOp]] = {}
    for op in ops:
        grouped.setdefault(op.path, []).append(op)
    return grouped


class Transaction(ABC):
    """Reads must all happen before the first write"""

    @abstractmethod
    async def get(self, path: str) -> Optional[dict]: ...

    @abstractmethod
    def write(self, ops: Sequence[WriteOp]) -> None: ...


class DocumentStore(ABC):
    @abstractmethod
    async def get(self, path: str) -> Optional[dict]:
        """Return the document data or None when it does not exist"""

    @abstractmethod
    async def get_many(self, paths: Iterable[str]) -> dict[str, Optional[dict]]:
        """Fetch several documents in one round trip"""

    @abstractmethod
    async def atomic_write(self, ops: Sequence[WriteOp]) -> None:
        """Apply all operations together or none of them"""

    @abstractmethod
    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        """
        Run fn inside a transaction. fn may be called more than once when the
        store detects a conflict, so it must not have side effects outside the
        transaction. Raises TransactionConflictError when attempts run out.
        """

    @abstractmethod
    async def query(
        self,
        collection_group: str,
        filters: Sequence[Filter],
        order_by: str,
        limit: int,
        start_after: Optional[Cursor] = None,
    ) -> list[Document]:
        """Query every collection named collection_group, ordered by order_by then path"""
