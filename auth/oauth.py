"""
auth/oauth.py -- OpenID Connect provider registry and authorization URLs.

zkLogin uses the OIDC implicit flow: the provider returns an id_token directly
in the redirect fragment, with the session nonce embedded. There is no code
exchange and no client secret -- the token's only consumer is the prover.

Providers are a mapping name -> ProviderConfig built once from Settings. Only
providers with a client id configured are registered; the login page renders a
button per registered provider. Adding a provider is one more entry in
_PROVIDER_ENDPOINTS (or, for a university, three env vars) -- no branching.

Supported providers:
  google     -- accounts.google.com
  twitch     -- id.twitch.tv
  facebook   -- facebook.com dialog (v19.0)
  university -- any OIDC SSO; endpoint and label from UNIVERSITY_* settings.

Security notes:
  [Z1] Client ids are unique per provider (validated in core.config). The
       audience claim is part of the address seed.
  [Z2] The provider name from the URL path is looked up in the registry, never
       interpolated into a URL, so a crafted name cannot redirect off-site.

Layer rule: no imports from api/ or web/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

from authlib.oauth2.rfc6749.parameters import prepare_grant_uri

from core.config import Settings
from core.errors import UnknownProvider

logger = logging.getLogger("suivote.auth.oauth")

# name -> (label, authorization endpoint, Settings field holding the client id)
_PROVIDER_ENDPOINTS: dict[str, tuple[str, str, str]] = {
    "google": ("Google", "https://accounts.google.com/o/oauth2/v2/auth", "google_client_id"),
    "twitch": ("Twitch", "https://id.twitch.tv/oauth2/authorize", "twitch_client_id"),
    "facebook": ("Facebook", "https://www.facebook.com/v19.0/dialog/oauth", "facebook_client_id"),
}


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    label: str
    auth_endpoint: str
    client_id: str


class ProviderRegistry:
    """Configured OIDC providers, keyed by name."""

    def __init__(self, providers: list[ProviderConfig], redirect_uri: str) -> None:
        self.providers = {p.name: p for p in providers}
        self.redirect_uri = redirect_uri

    @classmethod
    def from_settings(cls, cfg: Settings) -> ProviderRegistry:
        providers: list[ProviderConfig] = []
        for name, (label, endpoint, client_id_field) in _PROVIDER_ENDPOINTS.items():
            client_id = getattr(cfg, client_id_field)
            if client_id:
                providers.append(ProviderConfig(name, label, endpoint, client_id))
                logger.info("%s OIDC provider registered", label)

        if cfg.university_client_id and cfg.university_auth_url:
            providers.append(
                ProviderConfig(
                    "university",
                    cfg.university_display_name,
                    cfg.university_auth_url,
                    cfg.university_client_id,
                )
            )
            logger.info("University SSO provider registered (display name: %s)", cfg.university_display_name)
        return cls(providers, cfg.redirect_uri)

    def get(self, name: str) -> ProviderConfig:
        try:
            return self.providers[name]
        except KeyError:
            raise UnknownProvider(f"OAuth provider {name!r} is not enabled.") from None

    def enabled(self) -> list[dict]:
        """Return [{"name", "label"}] for every registered provider, in registration order."""
        return [{"name": p.name, "label": p.label} for p in self.providers.values()]

    def authorization_url(self, name: str, nonce: str) -> str:
        """Build the provider's authorization URL for the implicit id_token flow."""
        provider = self.get(name)
        return prepare_grant_uri(
            provider.auth_endpoint,
            client_id=provider.client_id,
            response_type="id_token",
            redirect_uri=self.redirect_uri,
            scope="openid",
            nonce=nonce,
        )
