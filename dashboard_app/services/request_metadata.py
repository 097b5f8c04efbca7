"""
Visitor metadata read from request headers.

Geo headers are set by the CDN in front of the app (Cloudflare or
Vercel); the app never does its own IP geolocation.
"""

from typing import Optional
from urllib.parse import unquote

from fastapi import Request

from dashboard_app.services.bot_detection import sanitize_user_agent

MAX_REFERRER_LENGTH = 2000

COUNTRY_HEADERS = ("x-user-country", "cf-ipcountry", "x-vercel-ip-country")
CITY_HEADERS = ("x-user-city", "cf-ipcity", "x-vercel-ip-city")


def _first_header(request: Request, names) -> Optional[str]:
    for name in names:
        value = request.headers.get(name)
        if value:
            return value
    return None


def normalize_country(value: Optional[str]) -> Optional[str]:
    """Two-letter codes only, upper-cased."""
    if not value:
        return None
    value = value.strip()
    if len(value) != 2:
        return None
    return value.upper()


def get_country(request: Request) -> Optional[str]:
    return normalize_country(_first_header(request, COUNTRY_HEADERS))


def get_city(request: Request) -> Optional[str]:
    city = _first_header(request, CITY_HEADERS)
    # Vercel URL-encodes city names ("S%C3%A3o%20Paulo")
    return unquote(city) if city else None


def get_referrer(request: Request) -> Optional[str]:
    referrer = request.headers.get("referer")
    return referrer[:MAX_REFERRER_LENGTH] if referrer else None


def get_user_agent(request: Request) -> Optional[str]:
    return sanitize_user_agent(request.headers.get("user-agent"))
