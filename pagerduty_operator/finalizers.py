"""Finalizer helpers.

These only touch the in-memory object; persisting the change is up to the
caller. Objects may be plain dicts (as returned by CustomObjectsApi) or typed
kubernetes client models with a ``metadata.finalizers`` attribute.
"""

from typing import Any, List


def _get_finalizers(obj: Any) -> List[str]:
    if isinstance(obj, dict):
        return list(obj.get("metadata", {}).get("finalizers") or [])
    return list(obj.metadata.finalizers or [])


def _set_finalizers(obj: Any, finalizers: List[str]) -> None:
    if isinstance(obj, dict):
        obj.setdefault("metadata", {})["finalizers"] = finalizers
    else:
        obj.metadata.finalizers = finalizers


def has_finalizer(obj: Any, finalizer: str) -> bool:
    """Return True if the object carries the finalizer."""
    return finalizer in set(_get_finalizers(obj))


def add_finalizer(obj: Any, finalizer: str) -> None:
    """Add the finalizer; no-op if already present."""
    finalizers = set(_get_finalizers(obj))
    finalizers.add(finalizer)
    _set_finalizers(obj, sorted(finalizers))


def delete_finalizer(obj: Any, finalizer: str) -> None:
    """Remove the finalizer; no-op if absent."""
    finalizers = set(_get_finalizers(obj))
    finalizers.discard(finalizer)
    _set_finalizers(obj, sorted(finalizers))
