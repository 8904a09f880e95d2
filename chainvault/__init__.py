"""Blockchain archive building blocks: metadata lookup, batched SQL, row models, notifications, tracing and logging."""

__version__ = "0.1.0"