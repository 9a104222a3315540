"""Background workers."""

from .email_dispatch import EmailDispatchWorker

__all__ = ["EmailDispatchWorker"]
