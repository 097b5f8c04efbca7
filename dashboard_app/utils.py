"""
Small helpers shared by models and services.
"""

import re
import uuid
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import urlparse


def utcnow() -> datetime:
    """Naive UTC timestamp; all stored datetimes are naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def new_uuid() -> str:
    return str(uuid.uuid4())


def slugify_model_name(name: str) -> str:
    """
    Model slugs keep hyphens typed by the user:
    "Luna Star!" -> "luna-star", "Mia - VIP" -> "mia---vip".
    """
    slug = re.sub(r"\s+", "-", name.strip().lower())
    return re.sub(r"[^a-z0-9-]", "", slug)


def slugify(value: str) -> str:
    """Collapse any run of non-alphanumerics into a single hyphen."""
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


def normalize_media_path(media_url: str) -> str:
    """
    Store object keys rather than absolute URLs.

    "https://cdn.example.com/models/luna/1.jpg" -> "models/luna/1.jpg"
    """
    if media_url.startswith("http://") or media_url.startswith("https://"):
        return urlparse(media_url).path.lstrip("/")
    return media_url


def mask_key(key: Optional[str]) -> str:
    """Keep only a short prefix of a secret for log lines."""
    if not key:
        return "<none>"
    return f"{key[:8]}..."


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
