"""Inbound message dispatching."""

from .dispatcher import MessageDispatcher

__all__ = ["MessageDispatcher"]
