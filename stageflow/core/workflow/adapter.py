"""Approvable-request adapter contract.

The engine knows nothing about the business object being approved. Each
request domain registers an adapter that can confirm a request exists and
stamp the final outcome onto it.
"""

import logging
from typing import Dict, Optional, Protocol, runtime_checkable

from stageflow.core.errors import ConfigurationError, ErrorKind
from .states import InstanceStatus

logger = logging.getLogger(__name__)


@runtime_checkable
class ApprovableRequestAdapter(Protocol):
    """
    Boundary between the engine and one request domain.

    ``on_finalized`` must be idempotent: applying the same outcome twice
    leaves the request unchanged. It raises ``AdapterError`` on failure.
    """

    request_type: str

    def exists(self, request_id: str) -> bool:
        """Return True if the request can be bound to a workflow."""

    def on_finalized(
        self, request_id: str, outcome: InstanceStatus, decided_by: Optional[int] = None
    ) -> None:
        """
        Stamp APPROVED or REJECTED onto the external request.

        ``decided_by`` is the reviewer whose vote finalized the instance, or
        None when a reviewer-set change completed the last stage.
        """


class AdapterRegistry:
    """Maps a request domain (``request_type``) to its adapter."""

    def __init__(self) -> None:
        self._adapters: Dict[str, ApprovableRequestAdapter] = {}

    def register(self, adapter: ApprovableRequestAdapter) -> None:
        if adapter.request_type in self._adapters:
            logger.warning("Replacing adapter for request type %s", adapter.request_type)
        self._adapters[adapter.request_type] = adapter

    def get(self, request_type: str) -> ApprovableRequestAdapter:
        adapter = self._adapters.get(request_type)
        if adapter is None:
            raise ConfigurationError(
                ErrorKind.UNKNOWN_REQUEST_TYPE,
                f"No approvable-request adapter registered for '{request_type}'",
            )
        return adapter

    def __contains__(self, request_type: str) -> bool:
        return request_type in self._adapters

    @property
    def request_types(self) -> list[str]:
        return sorted(self._adapters)
