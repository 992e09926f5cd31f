"""
rate_limit.py — Global rate limiter instance.

Uses slowapi (a Starlette-compatible wrapper around the `limits` library).
Requests are keyed by client IP address.

Limited routes:
  POST /api/sos/trigger  — settings.sos_rate_limit (default 10/minute)
  POST /api/auth/login   — 20/minute

Routes opt in with @limiter.limit(...) and must accept `request: Request`.
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

limiter = Limiter(key_func=get_remote_address)
