from typing import Optional

from fastapi import Request
from pydantic import BaseModel


class ClientContext(BaseModel):
    ip_address: Optional[str] = None
    ip_country: Optional[str] = None
    user_agent: Optional[str] = None


def get_client_ip(request: Request) -> Optional[str]:
    """Best effort client address: CF-Connecting-IP, X-Real-IP, first X-Forwarded-For hop, socket."""
    cf_ip = request.headers.get("cf-connecting-ip")
    if cf_ip:
        return cf_ip.strip()

    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip.strip()

    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first

    return request.client.host if request.client else None


def get_client_country(request: Request) -> Optional[str]:
    country = request.headers.get("cf-ipcountry")
    # XX is Cloudflare's "unknown"
    if not country or country.upper() == "XX":
        return None
    return country.upper()


def get_client_context(request: Request) -> ClientContext:
    return ClientContext(
        ip_address=get_client_ip(request),
        ip_country=get_client_country(request),
        user_agent=request.headers.get("user-agent"),
    )
