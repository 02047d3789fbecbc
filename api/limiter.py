"""
api/limiter.py -- slowapi rate limiter factory.

create_app() builds one Limiter per application and stores it on
app.state.limiter, where SlowAPIMiddleware and the exception handler expect
it. Counters therefore live with the app: two apps in one process (tests,
or an embedding host) never share a budget.

The login limit string comes from the Settings handed to create_app(), see
api/routes/auth.py:build_router().
"""

from slowapi import Limiter
from slowapi.util import get_remote_address


def create_limiter() -> Limiter:
    return Limiter(key_func=get_remote_address, storage_uri="memory://")
