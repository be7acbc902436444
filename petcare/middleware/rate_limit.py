"""
Rate limiting por endpoint con slowapi (register, login, reactivate...).
"""
from fastapi import Request
from limits import parse
from slowapi.util import get_remote_address

from ..errors import AppError


class TooManyRequests(AppError):
    status_code = 429
    default_message = "Too many requests, please try again later."


def apply_rate_limit(request: Request, limit: str) -> None:
    """
    Aplica un límite tipo "5/minute" a la IP del cliente.
    Si la app no tiene limiter (tests), no hace nada.
    """
    limiter = getattr(request.app.state, "limiter", None)
    if limiter is None:
        return

    key = f"{request.url.path}:{get_remote_address(request)}"
    if not limiter.limiter.hit(parse(limit), key):
        raise TooManyRequests(f"Too many requests. Limit: {limit}. Please try again later.")
