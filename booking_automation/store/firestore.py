"""
Firestore implementation of the document store
All calls go through the async client so workers never block the event loop
"""

import logging
from contextlib import contextmanager
from typing import Awaitable, Callable, Iterable, Optional, Sequence, TypeVar

from google.api_core import exceptions as google_exceptions
from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from ..config import FIRESTORE_TRANSACTION_ATTEMPTS
from ..exceptions import StoreUnavailableError, TransactionConflictError
from .base import (
    DELETE,
    INCREMENT,
    Cursor,
    Document,
    DocumentStore,
    Filter,
    Transaction,
    WriteOp,
    group_ops,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

DOCUMENT_NAME = "__name__"

_TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
    google_exceptions.ResourceExhausted,
    google_exceptions.RetryError,
)


@contextmanager
def _translate_errors(operation: str):
    try:
        yield
    except google_exceptions.Aborted as e:
        logger.warning(f"⚠️ Firestore {operation} aborted: {e}")
        raise TransactionConflictError(f"Firestore {operation} aborted: {e}") from e
    except _TRANSIENT_ERRORS as e:
        logger.error(f"❌ Firestore {operation} failed: {e}")
        raise StoreUnavailableError(f"Firestore {operation} failed: {e}") from e


def _to_firestore_value(op: WriteOp):
    if op.op == INCREMENT:
        return firestore.Increment(op.value)
    if op.op == DELETE:
        return firestore.DELETE_FIELD
    return op.value


def build_merge_payload(ops: Iterable[WriteOp]) -> dict:
    """
    Turn field operations into a nested dict for set(merge=True).
    set() does not expand dotted keys, so "service_breakdown.s1" becomes
    {"service_breakdown": {"s1": ...}} and merges only that leaf.
    """
    payload: dict = {}
    for op in ops:
        *parents, leaf = op.field.split(".")
        target = payload
        for part in parents:
            target = target.setdefault(part, {})
        target[leaf] = _to_firestore_value(op)
    return payload


class _FirestoreTransaction(Transaction):
    def __init__(self, client: firestore.AsyncClient, transaction):
        self._client = client
        self._transaction = transaction

    async def get(self, path: str) -> Optional[dict]:
        snapshot = await self._client.document(path).get(transaction=self._transaction)
        return snapshot.to_dict() if snapshot.exists else None

    def write(self, ops: Sequence[WriteOp]) -> None:
        for path, doc_ops in group_ops(ops).items():
            self._transaction.set(
                self._client.document(path), build_merge_payload(doc_ops), merge=True
            )


class FirestoreDocumentStore(DocumentStore):
    def __init__(
        self,
        client: firestore.AsyncClient,
        max_transaction_attempts: int = FIRESTORE_TRANSACTION_ATTEMPTS,
    ):
        self._client = client
        self._max_transaction_attempts = max_transaction_attempts

    async def get(self, path: str) -> Optional[dict]:
        with _translate_errors("get"):
            snapshot = await self._client.document(path).get()
        return snapshot.to_dict() if snapshot.exists else None

    async def get_many(self, paths: Iterable[str]) -> dict[str, Optional[dict]]:
        unique_paths = list(dict.fromkeys(paths))
        result: dict[str, Optional[dict]] = {path: None for path in unique_paths}
        if not unique_paths:
            return result

        refs = [self._client.document(path) for path in unique_paths]
        with _translate_errors("get_all"):
            async for snapshot in self._client.get_all(refs):
                if snapshot.exists:
                    result[snapshot.reference.path] = snapshot.to_dict()
        return result

    async def atomic_write(self, ops: Sequence[WriteOp]) -> None:
        if not ops:
            return
        batch = self._client.batch()
        for path, doc_ops in group_ops(ops).items():
            batch.set(self._client.document(path), build_merge_payload(doc_ops), merge=True)
        with _translate_errors("batch commit"):
            await batch.commit()

    async def run_transaction(self, fn: Callable[[Transaction], Awaitable[T]]) -> T:
        transaction = self._client.transaction(max_attempts=self._max_transaction_attempts)

        @firestore.async_transactional
        async def _run(tx):
            return await fn(_FirestoreTransaction(self._client, tx))

        with _translate_errors("transaction"):
            try:
                return await _run(transaction)
            except ValueError as e:
                # Exhausted retries surface as ValueError chained from Aborted
                if isinstance(e.__cause__, google_exceptions.Aborted):
                    logger.warning(
                        f"⚠️ Firestore transaction gave up after {self._max_transaction_attempts} attempts"
                    )
                    raise TransactionConflictError(f"Firestore transaction conflicted: {e}") from e
                raise

    async def query(
        self,
        collection_group: str,
        filters: Sequence[Filter],
        order_by: str,
        limit: int,
        start_after: Optional[Cursor] = None,
    ) -> list[Document]:
        query = self._client.collection_group(collection_group)
        for field_name, operator, value in filters:
            query = query.where(filter=FieldFilter(field_name, operator, value))
        # Document name breaks ties so a cursor lands on exactly one position
        query = query.order_by(order_by).order_by(DOCUMENT_NAME)

        if start_after is not None:
            # Resume from the values the previous page saw, not from the
            # cursor document's current state, which may have moved since
            query = query.start_after(
                {
                    order_by: start_after.value,
                    DOCUMENT_NAME: self._client.document(start_after.path),
                }
            )

        with _translate_errors("query"):
            documents = []
            async for snapshot in query.limit(limit).stream():
                documents.append(Document(snapshot.reference.path, snapshot.to_dict() or {}))
        return documents
