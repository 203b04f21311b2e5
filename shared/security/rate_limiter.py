import os
from slowapi import Limiter
from slowapi.util import get_remote_address

# The one setting read at import time: @limiter.limit() takes its value when
# the router module is imported, before create_app() builds Settings.
PAYMENT_STATUS_RATE_LIMIT = os.getenv("PAYMENT_STATUS_RATE_LIMIT", "30/minute")

# Polling clients are anonymous (guest checkouts), so the key is the client IP
# (handles proxies if X-Forwarded-For is set correctly by Uvicorn)
limiter = Limiter(key_func=get_remote_address)
