"""
User-Agent based bot filtering for tracking redirects.

Crawlers, link-preview fetchers and uptime monitors hit tracking links
constantly; counting them would drown real visits.
"""

import re
from typing import Optional

MAX_USER_AGENT_LENGTH = 500

BOT_PATTERNS = [
    # Search engines
    r"googlebot", r"bingbot", r"yandexbot", r"duckduckbot", r"baiduspider",
    r"sogou", r"exabot", r"ia_archiver",
    # Social media crawlers
    r"facebookexternalhit", r"facebot", r"twitterbot", r"linkedinbot",
    r"pinterest", r"slackbot", r"telegrambot", r"whatsapp", r"discordbot",
    # SEO and monitoring tools
    r"semrushbot", r"ahrefsbot", r"mj12bot", r"dotbot", r"rogerbot",
    r"screaming frog", r"seokicks",
    # Generic
    r"bot\b", r"crawler", r"spider", r"scraper", r"headless", r"phantom",
    r"selenium", r"puppeteer", r"playwright",
    # Uptime monitors and validators
    r"uptimerobot", r"pingdom", r"statuscake", r"site24x7", r"gtmetrix",
    r"pagespeed", r"lighthouse", r"w3c_validator",
    # Preview generators
    r"preview", r"thumbnail", r"snap", r"archive",
    # Cloud services
    r"cloudflare", r"amazon.*bot", r"petalbot",
]

_BOT_RE = re.compile("|".join(f"(?:{pattern})" for pattern in BOT_PATTERNS), re.IGNORECASE)


def is_bot(user_agent: Optional[str]) -> bool:
    """A missing User-Agent is treated as a bot."""
    if not user_agent:
        return True
    return _BOT_RE.search(user_agent) is not None


def sanitize_user_agent(
    user_agent: Optional[str], max_length: int = MAX_USER_AGENT_LENGTH
) -> Optional[str]:
    if not user_agent:
        return None
    return user_agent.strip()[:max_length]
