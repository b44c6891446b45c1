from __future__ import annotations

from typing import ContextManager, Protocol


class UnitOfWork(Protocol):
    """Transaction boundary shared by the repositories of one request."""

    def transaction(self) -> ContextManager[None]:
        raise NotImplementedError
