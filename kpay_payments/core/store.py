"""
Transaction store interface and an in-memory implementation.

The store is the only durable state the core touches. Implementations must
provide a per-reference exclusive section (``lock``) and a save that is
conditioned on the status the caller last read, so that two writers racing on
the same reference cannot both apply a transition.
"""
import copy
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional

from .exceptions import StoreError
from .models import Transaction, TransactionStatus, utcnow


class TransactionStore(ABC):
    """Abstract repository for transaction records."""

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._lock_holders: Dict[str, int] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def lock(self, reference: str) -> Iterator[None]:
        """
        Per-reference exclusive section for read-apply-save sequences.

        This serialises writers inside one process; cross-process safety comes
        from the status-conditioned ``save``. A lock lives only while some
        caller holds or waits for it.
        """
        with self._locks_guard:
            reference_lock = self._locks.setdefault(reference, threading.Lock())
            self._lock_holders[reference] = self._lock_holders.get(reference, 0) + 1
        try:
            with reference_lock:
                yield
        finally:
            with self._locks_guard:
                self._lock_holders[reference] -= 1
                if not self._lock_holders[reference]:
                    del self._lock_holders[reference]
                    del self._locks[reference]

    @abstractmethod
    def create(self, transaction: Transaction) -> Transaction:
        """
        Persist a new transaction.

        Raises:
            StoreError: If the reference already exists or the write fails
        """
        ...

    @abstractmethod
    def save(self, transaction: Transaction, expected_status: TransactionStatus) -> bool:
        """
        Overwrite a transaction if its stored status still equals ``expected_status``.

        Returns:
            bool: False when the stored status changed since it was read
        """
        ...

    @abstractmethod
    def find_by_reference(self, reference: str) -> Optional[Transaction]:
        ...

    @abstractmethod
    def list_by_status(self, status: TransactionStatus) -> List[Transaction]:
        ...

    @abstractmethod
    def list_by_user(self, user_id: str) -> List[Transaction]:
        ...

    @abstractmethod
    def list_by_order(self, order_id: str) -> List[Transaction]:
        ...


class InMemoryTransactionStore(TransactionStore):
    """Dictionary-backed store for tests and single-process embedding."""

    def __init__(self) -> None:
        super().__init__()
        self._records: Dict[str, Transaction] = {}
        self._write_lock = threading.Lock()

    def create(self, transaction: Transaction) -> Transaction:
        with self._write_lock:
            if transaction.reference in self._records:
                raise StoreError(f"Transaction {transaction.reference} already exists")
            self._records[transaction.reference] = copy.deepcopy(transaction)
        return copy.deepcopy(transaction)

    def save(self, transaction: Transaction, expected_status: TransactionStatus) -> bool:
        with self._write_lock:
            current = self._records.get(transaction.reference)
            if current is None or current.status is not expected_status:
                return False
            stored = copy.deepcopy(transaction)
            stored.updated_at = utcnow()
            self._records[transaction.reference] = stored
        return True

    def find_by_reference(self, reference: str) -> Optional[Transaction]:
        record = self._records.get(reference)
        return copy.deepcopy(record) if record is not None else None

    def list_by_status(self, status: TransactionStatus) -> List[Transaction]:
        return [copy.deepcopy(t) for t in self._records.values() if t.status is status]

    def list_by_user(self, user_id: str) -> List[Transaction]:
        return [copy.deepcopy(t) for t in self._records.values() if t.user_id == user_id]

    def list_by_order(self, order_id: str) -> List[Transaction]:
        return [copy.deepcopy(t) for t in self._records.values() if t.order_id == order_id]

    def __len__(self) -> int:
        return len(self._records)
