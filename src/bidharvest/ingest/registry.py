from __future__ import annotations

from bidharvest.config import SiteConfig
from bidharvest.errors import UsageError
from .sources.cherokee import CHEROKEE


def register_sites() -> list[SiteConfig]:
    return [CHEROKEE]


def get_site(name: str) -> SiteConfig:
    for site in register_sites():
        if site.name == name.strip().lower():
            return site
    known = ", ".join(site.name for site in register_sites())
    raise UsageError(f"Unknown source '{name}'. Known sources: {known}.")
