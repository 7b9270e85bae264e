"""
api/limiter.py -- Shared slowapi rate limiter instance.

Imported by api/main.py (mounted as middleware and registered on app.state)
and by api/routes/v1/auth.py (per-route limits on login and register via
@limiter.limit()).

One shared instance means one in-memory counter store. Separate instances per
module would each count on their own and the limits would never trigger.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address, storage_uri="memory://")
