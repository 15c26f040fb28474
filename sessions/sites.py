"""
sessions/sites.py -- Static registry of external sites that accept uploaded sessions.

The registry is the only source of truth for which site keys exist. Every
session operation resolves its site through get_site(), which fails closed
with UnsupportedSiteError for unknown keys before any other work is done.
"""

from __future__ import annotations

from dataclasses import dataclass

from core.errors import UnsupportedSiteError


@dataclass(frozen=True)
class SiteInfo:
    key: str
    display_name: str
    domains: tuple[str, ...]

    @property
    def primary_domain(self) -> str:
        """Canonical domain stored on ExternalSessionRecord.domain."""
        return self.domains[0]


SUPPORTED_SITES: dict[str, SiteInfo] = {
    site.key: site
    for site in (
        SiteInfo("MERCADO_LIVRE", "Mercado Livre", ("mercadolivre.com.br", "mercadolibre.com")),
        SiteInfo("FACEBOOK_MARKETPLACE", "Facebook Marketplace", ("facebook.com", "www.facebook.com")),
        SiteInfo("SUPERBID", "Superbid", ("superbid.net", "www.superbid.net")),
        SiteInfo("VIP_LEILOES", "VIP Leilões", ("vipleiloes.com.br", "www.vipleiloes.com.br")),
        SiteInfo("SODRE_SANTORO", "Sodré Santoro", ("sodresantoro.com.br", "www.sodresantoro.com.br")),
    )
}


def get_site(key: str) -> SiteInfo:
    """Return the registry entry for key. Raises UnsupportedSiteError if absent."""
    site = SUPPORTED_SITES.get(key)
    if site is None:
        raise UnsupportedSiteError(key, list(SUPPORTED_SITES))
    return site


def display_name(key: str) -> str:
    """Human-readable name for key, or the key itself for unknown sites."""
    site = SUPPORTED_SITES.get(key)
    return site.display_name if site is not None else key
