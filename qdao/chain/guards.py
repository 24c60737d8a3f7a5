"""
Non-reentrant execution lock.
"""

from ..exceptions import ReentrancyError
from ..logger import get_logger

logger = get_logger(__name__)


class NonReentrant:
    """
    Rejects nested entry into the guarded operation while it is running.

    Usage::

        self._lock = NonReentrant("execute_fund_request")
        with self._lock:
            ...
    """

    def __init__(self, name: str):
        self.name = name
        self._entered = False

    @property
    def entered(self) -> bool:
        return self._entered

    def __enter__(self) -> "NonReentrant":
        if self._entered:
            logger.warning(f"Reentrant call into {self.name} rejected")
            raise ReentrancyError(f"Reentrant call into {self.name}")
        self._entered = True
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self._entered = False
        return False
