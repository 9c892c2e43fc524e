"""Engine wiring for request handlers.

Handlers depend on get_engine; tests swap it through
app.dependency_overrides.
"""

from functools import lru_cache

from hostelly.domain.booking_engine import BookingEngine, build_engine


@lru_cache(maxsize=1)
def get_engine() -> BookingEngine:
    return build_engine()
