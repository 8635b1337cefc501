"""Base service class for business logic."""

from __future__ import annotations

import logging

from fanout_service.infra.logging import get_lazy_logger


class BaseService:
    """Base class for service classes.

    Loggers:
        - self.logger: Standard logger for INFO/WARNING/ERROR (always evaluated)
        - self._lazy: Lazy logger for DEBUG (zero overhead when DEBUG disabled)

    Both are named after the concrete class's module, so the engine's
    records sit under ``fanout_service.features...`` in log configuration.
    """

    def __init__(self) -> None:
        name = f"{type(self).__module__}.{type(self).__name__}"
        self.logger = logging.getLogger(name)
        self._lazy = get_lazy_logger(name)
