"""Access resolver factory.

Provides get_resolver() / set_resolver() to swap implementations. The
adapter is chosen with the ACCESS_ADAPTER environment variable.
"""

import os

from orderflow.access.port import AccessResolver

_current_resolver: AccessResolver | None = None


def get_resolver() -> AccessResolver:
    """Return the active access resolver. Defaults to FakeAccessResolver."""
    global _current_resolver
    if _current_resolver is None:
        adapter = os.environ.get("ACCESS_ADAPTER", "fake")
        if adapter == "fake":
            from orderflow.access.fake_adapter import FakeAccessResolver

            _current_resolver = FakeAccessResolver()
        else:
            raise ValueError(f"Unknown access adapter: {adapter}")
    return _current_resolver


def set_resolver(resolver: AccessResolver) -> None:
    global _current_resolver
    _current_resolver = resolver


def reset_resolver() -> None:
    global _current_resolver
    _current_resolver = None
