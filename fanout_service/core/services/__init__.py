"""Service layer base classes."""

from fanout_service.core.services.base import BaseService

__all__ = ["BaseService"]
