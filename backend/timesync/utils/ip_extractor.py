"""Client address extraction from HTTP requests behind a reverse proxy."""

from typing import Optional
from fastapi import Request


def get_client_ip(request: Request) -> str:
    """
    Real client IP of a request.

    Order of precedence:
    1. X-Forwarded-For (first address: the original client)
    2. X-Real-IP
    3. the direct peer address
    """
    forwarded_for = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def get_user_agent(request: Request) -> Optional[str]:
    return request.headers.get("User-Agent")
