"""Optional cross-request cache of ledger company ids."""

from abc import ABC, abstractmethod


class KeyValueStore(ABC):
    """Minimal get/put/delete store, e.g. backed by Redis or a table."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        ...

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        ...

    @abstractmethod
    def delete(self, key: str) -> None:
        ...


class InMemoryStore(KeyValueStore):
    """Process-local store. Lives only as long as the object does."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


def company_key(company_name: str) -> str:
    return f"company:{company_name.strip().casefold()}"
