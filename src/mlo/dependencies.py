"""Shared FastAPI dependencies."""

from fastapi import Request

from mlo.progress.store import ProgressStore


def get_store(request: Request) -> ProgressStore:
    """The progress store the application was started with."""
    store: ProgressStore | None = getattr(request.app.state, "store", None)
    if store is None:
        msg = "Progress store not initialized."
        raise RuntimeError(msg)
    return store
