"""Engine provider for the API layer.

Provides get_engine() / set_engine() so tests and the application lifespan
can install an engine built with their own collaborators.
"""

from orderflow.lifecycle.engine import OrderLifecycleEngine, build_engine

_current_engine: OrderLifecycleEngine | None = None


def get_engine() -> OrderLifecycleEngine:
    """Return the active engine, building a default one on first use."""
    global _current_engine
    if _current_engine is None:
        _current_engine = build_engine()
    return _current_engine


def set_engine(engine: OrderLifecycleEngine) -> None:
    global _current_engine
    _current_engine = engine


def reset_engine() -> None:
    global _current_engine
    if _current_engine is not None:
        _current_engine.shutdown()
    _current_engine = None
