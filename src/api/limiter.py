"""
Rate limiter configuration using slowapi
"""
from slowapi import Limiter
from slowapi.util import get_remote_address

from src.config import config

# Initialize the limiter
limiter = Limiter(key_func=get_remote_address, enabled=config.get("rate_limit", "enabled", True))

LOGIN_LIMIT = config.get("rate_limit", "login", "10/minute")
BEACON_LIMIT = config.get("rate_limit", "beacon", "120/minute")
