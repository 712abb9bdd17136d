"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for SuiVote happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. prover_url -> PROVER_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Used for the DEBUG-conditional SECRET_KEY
      logic, the fullnode and faucet URL defaults, and the unique-client-id rule.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. It signs the
       session cookie that carries the session id -- a short key lets an
       attacker forge a session id and read another browser's namespace.

  [M7] In production mode (DEBUG not set or false), a missing SECRET_KEY is a
       hard startup failure.

  [Z1] No two OAuth providers may share a client id. The id_token audience
       claim feeds the address seed, so a shared client id would let one
       provider's login derive another provider's address.

Layer rule: core/ is the kernel. This module may not import from api/, web/,
or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("suivote.config")

# One Sui epoch is roughly 24h. Two epochs keeps the ephemeral key (and the
# replay window of a leaked proof) short while surviving an epoch boundary.
MAX_EPOCH_OFFSET = 2

FULLNODE_URL_TEMPLATE = "https://fullnode.{network}.sui.io:443"
FAUCET_URL_TEMPLATE = "https://faucet.{network}.sui.io"
# Networks with a public faucet. Any other network gets none unless FAUCET_URL
# names one, and mainnet never does.
FAUCET_NETWORKS = ("devnet", "testnet")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file. The model_validator enforces
    production-safety rules at startup.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    secure_cookies: bool = False

    # ------------------------------------------------------------------
    # Ledger
    # ------------------------------------------------------------------

    network: str = "devnet"
    # Empty means "public fullnode for `network`" -- filled in by the validator.
    fullnode_url: str = ""
    request_timeout_seconds: float = 10.0
    # Empty means "public faucet for `network`"; always empty on mainnet.
    faucet_url: str = ""

    # ------------------------------------------------------------------
    # zkLogin services
    # ------------------------------------------------------------------

    prover_url: str = "https://prover-dev.mystenlabs.com/v1"
    salt_service_url: str = ""
    # "remote" posts the JWT to salt_service_url. "demo" derives the salt
    # locally from the token claims and is NOT safe for production.
    salt_mode: str = "remote"
    redirect_uri: str = "http://localhost:8000/auth"
    max_epoch_offset: int = MAX_EPOCH_OFFSET
    # Proof generation takes seconds; the prover gets a longer budget.
    prover_timeout_seconds: float = 60.0

    # ------------------------------------------------------------------
    # OAuth providers (empty string means provider is disabled)
    # ------------------------------------------------------------------

    google_client_id: str = ""
    twitch_client_id: str = ""
    facebook_client_id: str = ""

    # University SSO -- any OIDC provider supporting the implicit id_token flow.
    university_client_id: str = ""
    university_auth_url: str = ""
    university_display_name: str = "University SSO"

    # ------------------------------------------------------------------
    # Voting program
    # ------------------------------------------------------------------

    voting_package_id: str = ""
    voting_registry_id: str = ""
    vote_gas_budget: int = 10_000_000

    # ------------------------------------------------------------------
    # Session namespace
    # ------------------------------------------------------------------

    session_db_url: str = ""
    # Namespaces idle for longer than this are purged by the background task.
    session_ttl_seconds: int = 60 * 60 * 24 * 7

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    # The public faucet rate-limits by IP as well; stay well under it.
    faucet_rate_limit: str = "5/hour"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    # Comma-separated Host header allow-list for TrustedHostMiddleware.
    allowed_hosts: str = "localhost,127.0.0.1,*.localhost"

    @property
    def allowed_host_list(self) -> list[str]:
        return [h.strip() for h in self.allowed_hosts.split(",") if h.strip()]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M7].

        Dev mode (DEBUG=true): auto-generate a random key with a warning.
            Sessions will not survive restart -- acceptable for local dev.

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters [M6].
        """
        if not self.secret_key:
            if self.debug:
                self.secret_key = secrets.token_hex(32)
                logger.warning(
                    "WARNING: Using auto-generated SECRET_KEY. " "Sessions will not persist across restarts."
                )
            else:
                raise ValueError(
                    "SECRET_KEY is required in production mode. "
                    "Set SECRET_KEY in your environment or .env file. "
                    "To run in development mode, set DEBUG=true."
                )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self

    @model_validator(mode="after")
    def validate_zklogin(self) -> "Settings":
        """Fill the fullnode and faucet defaults and reject ambiguous zkLogin configuration [Z1]."""
        if not self.fullnode_url:
            self.fullnode_url = FULLNODE_URL_TEMPLATE.format(network=self.network)
        if self.network == "mainnet" and self.faucet_url:
            raise ValueError("FAUCET_URL cannot be set when NETWORK=mainnet.")
        if not self.faucet_url and self.network in FAUCET_NETWORKS:
            self.faucet_url = FAUCET_URL_TEMPLATE.format(network=self.network)
        if self.salt_mode not in ("remote", "demo"):
            raise ValueError(f"SALT_MODE must be 'remote' or 'demo', got {self.salt_mode!r}.")
        if self.salt_mode == "remote" and not self.salt_service_url and not self.debug:
            raise ValueError("SALT_SERVICE_URL is required when SALT_MODE=remote.")
        if self.max_epoch_offset < 1:
            raise ValueError("MAX_EPOCH_OFFSET must be at least 1.")

        client_ids = [
            cid
            for cid in (
                self.google_client_id,
                self.twitch_client_id,
                self.facebook_client_id,
                self.university_client_id,
            )
            if cid
        ]
        if len(client_ids) != len(set(client_ids)):
            raise ValueError("OAuth client ids must be unique per provider.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    Uses lru_cache so Settings() is instantiated exactly once -- at first call.
    All modules should call get_settings() rather than constructing Settings() directly.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
