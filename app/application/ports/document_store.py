from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Callable, TypeVar, Union

T = TypeVar("T")

Where = tuple[str, str, Any]  # (field, "==" | "!=" | "in", value)
Unsubscribe = Callable[[], None]


class _ServerTimestamp:
    def __repr__(self) -> str:
        return "SERVER_TIMESTAMP"

    def __copy__(self) -> "_ServerTimestamp":
        return self

    def __deepcopy__(self, memo: dict) -> "_ServerTimestamp":
        return self


# Replaced by the store's clock at commit time.
SERVER_TIMESTAMP: Any = _ServerTimestamp()


@dataclass(frozen=True)
class DocumentSnapshot:
    path: str
    data: dict[str, Any] | None
    version: int = 0

    @property
    def exists(self) -> bool:
        return self.data is not None

    @property
    def id(self) -> str:
        return self.path.rsplit("/", 1)[-1]

    def to_dict(self) -> dict[str, Any]:
        return dict(self.data or {})


# Anything with get(path) -> DocumentSnapshot: the store itself or an open transaction.
DocumentReader = Union["TransactionPort", "DocumentStorePort"]


class TransactionPort(ABC):
    """
    One attempt of a read-then-write transaction.
    All reads must happen before the first write.
    """

    @abstractmethod
    def get(self, path: str) -> DocumentSnapshot:
        raise NotImplementedError

    @abstractmethod
    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, path: str, data: dict[str, Any]) -> None:
        """Merge fields into an existing document. Fails at commit if it does not exist."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, path: str) -> None:
        raise NotImplementedError


class DocumentStorePort(ABC):
    @abstractmethod
    def run_transaction(self, fn: Callable[[TransactionPort], T], max_attempts: int = 5) -> T:
        """
        Run fn against a fresh transaction and commit its writes atomically.
        If any document read by fn changed before commit, fn is re-run.
        Raises TransactionConflict after max_attempts.
        """
        raise NotImplementedError

    @abstractmethod
    def get(self, path: str) -> DocumentSnapshot:
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        collection: str,
        where: list[Where] | None = None,
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[DocumentSnapshot]:
        raise NotImplementedError

    @abstractmethod
    def subscribe(self, path: str, callback: Callable[[DocumentSnapshot], None]) -> Unsubscribe:
        """Push the current value now and after every commit that touches path."""
        raise NotImplementedError

    @abstractmethod
    def subscribe_query(
        self,
        collection: str,
        where: list[Where] | None,
        callback: Callable[[list[DocumentSnapshot]], None],
    ) -> Unsubscribe:
        raise NotImplementedError

    def set(self, path: str, data: dict[str, Any], merge: bool = False) -> None:
        self.run_transaction(lambda tx: tx.set(path, data, merge=merge))

    def delete(self, path: str) -> None:
        self.run_transaction(lambda tx: tx.delete(path))
