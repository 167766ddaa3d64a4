import hashlib
import logging
import time
from typing import Any, Dict, Optional

from fastapi import HTTPException
from supabase import Client

logger = logging.getLogger(__name__)

# token hash -> (user_data, expiry)
_AUTH_USER_CACHE: Dict[str, tuple] = {}
_AUTH_CACHE_TTL_SEC = 60
_AUTH_CACHE_MAX_SIZE = 500


def _token_key(token: str) -> str:
    return hashlib.sha256(token.encode()).hexdigest()


def _cached_user(key: str) -> Optional[Dict[str, Any]]:
    entry = _AUTH_USER_CACHE.get(key)
    if entry is None:
        return None
    user_data, expiry = entry
    if time.monotonic() >= expiry:
        _AUTH_USER_CACHE.pop(key, None)
        return None
    return user_data


def _remember_user(key: str, user_data: Dict[str, Any]) -> None:
    if len(_AUTH_USER_CACHE) < _AUTH_CACHE_MAX_SIZE:
        _AUTH_USER_CACHE[key] = (user_data, time.monotonic() + _AUTH_CACHE_TTL_SEC)


class AuthService:
    """Resolves platform bearer tokens to users through Supabase Auth."""

    def __init__(self, supabase: Client):
        self.supabase = supabase

    def get_current_user(self, token: str) -> Dict[str, Any]:
        key = _token_key(token)
        user_data = _cached_user(key)
        if user_data is not None:
            return user_data

        try:
            user_response = self.supabase.auth.get_user(jwt=token)
        except Exception as e:
            logger.info(f"[Auth] Token rejected: {e}")
            raise HTTPException(status_code=401, detail="Invalid or expired token")

        user = getattr(user_response, "user", None)
        if not user:
            raise HTTPException(status_code=401, detail="Invalid or expired token")

        user_data = {
            "id": user.id,
            "email": user.email,
            "app_metadata": user.app_metadata or {},
        }
        _remember_user(key, user_data)
        return user_data
