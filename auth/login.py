"""
auth/login.py -- The zkLogin login flow: provider redirect and callback completion.

begin_login() runs before the OAuth redirect:
  fetch epoch -> expiry epoch + randomness -> ephemeral keypair -> SetupData
  persisted -> nonce -> provider authorization URL.

complete_login() runs after the provider redirects back with an id_token:

  AwaitingCallback -> TokenReceived -> SaltResolved -> ProofRequested
                   -> Complete | Failed

Every transition is logged at DEBUG; a failure is logged at WARNING with the
state it happened in and then re-raised unchanged. Nothing is retried. The
SetupData is taken (read and deleted in one step) before anything uses it, so
a replayed or concurrent callback finds nothing to complete.

Security notes:
  [Z3] If the id_token carries a nonce claim, it must equal the nonce
       re-derived from SetupData. A token minted for another login attempt is
       rejected before the salt service or the prover ever see it.
  [Z4] The ephemeral private key is never logged. Neither is the id_token.

Layer rule: no imports from api/ or web/.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional
from urllib.parse import parse_qs, urlsplit

from auth.epochs import EpochTracker
from auth.keys import EphemeralKeyPair
from auth.models import AccountData, SetupData
from auth.oauth import ProviderRegistry
from auth.prover import ProverClient
from auth.salt import SaltResolver
from auth.store import ZkSessionStore
from auth.zkcrypto import claims_to_address, decode_identity_token, generate_nonce
from core.errors import DuplicateAccount, MalformedIdentityToken, MissingSetupData, ZkLoginError

logger = logging.getLogger("suivote.auth.login")


class CallbackState(str, Enum):
    AWAITING_CALLBACK = "AwaitingCallback"
    TOKEN_RECEIVED = "TokenReceived"
    SALT_RESOLVED = "SaltResolved"
    PROOF_REQUESTED = "ProofRequested"
    COMPLETE = "Complete"
    FAILED = "Failed"


def parse_id_token(callback: str) -> Optional[str]:
    """Extract id_token from a callback URL, a bare fragment, or a query string.

    The fragment wins over the query when both carry a token, since the
    implicit flow always answers in the fragment.
    """
    if not callback:
        return None
    if "://" in callback:
        parts = urlsplit(callback)
        candidates = [parts.fragment, parts.query]
    else:
        candidates = [callback.lstrip("#?")]
    for candidate in candidates:
        tokens = parse_qs(candidate).get("id_token")
        if tokens and tokens[0]:
            return tokens[0]
    return None


class LoginFlow:
    """Drive one browser session from provider choice to a stored AccountData.

    Args:
        epochs: Epoch reads and expiry policy.
        providers: Configured OIDC providers.
        salt_resolver: Remote or demo salt source, chosen at startup.
        prover: Proving service client.
    """

    def __init__(
        self,
        epochs: EpochTracker,
        providers: ProviderRegistry,
        salt_resolver: SaltResolver,
        prover: ProverClient,
    ) -> None:
        self.epochs = epochs
        self.providers = providers
        self.salt_resolver = salt_resolver
        self.prover = prover

    def begin_login(self, store: ZkSessionStore, provider: str) -> str:
        """Persist fresh SetupData and return the provider's authorization URL.

        Raises:
            UnknownProvider: Provider not registered. Nothing is written.
            EpochFetchFailed: Ledger unreachable. Nothing is written.
        """
        self.providers.get(provider)
        expiry_epoch = self.epochs.next_expiry_epoch()
        randomness = self.epochs.generate_randomness()
        keypair = EphemeralKeyPair.generate()

        store.save_setup(
            SetupData(
                provider=provider,
                expiry_epoch=expiry_epoch,
                randomness=randomness,
                ephemeral_private_key=keypair.export_secret_key(),
            )
        )
        nonce = generate_nonce(keypair.public_key_sui_bytes(), expiry_epoch, randomness)
        logger.info("Login started: provider=%s expiry_epoch=%d", provider, expiry_epoch)
        return self.providers.authorization_url(provider, nonce)

    def complete_login(self, store: ZkSessionStore, callback: str) -> Optional[AccountData]:
        """Finish a login from the provider callback.

        Returns None when the callback carries no id_token (a plain visit to
        the callback page). Otherwise returns the new, persisted AccountData.

        Raises:
            MalformedIdentityToken, MissingSetupData, DuplicateAccount,
            SaltServiceFailed, ProofServiceFailed.
        """
        state = CallbackState.AWAITING_CALLBACK
        token = parse_id_token(callback)
        if token is None:
            logger.debug("Callback without id_token; nothing to complete")
            return None

        try:
            claims = decode_identity_token(token)
            state = self._advance(state, CallbackState.TOKEN_RECEIVED)

            # Consumed here whatever happens next; a replayed callback finds nothing.
            setup = store.take_setup()
            if setup is None:
                raise MissingSetupData("No login is in progress for this browser session.")

            keypair = EphemeralKeyPair.from_secret_key(setup.ephemeral_private_key)
            if claims.nonce is not None:
                expected = generate_nonce(keypair.public_key_sui_bytes(), setup.expiry_epoch, setup.randomness)
                if claims.nonce != expected:
                    raise MalformedIdentityToken("Identity token was not issued for this login attempt.")

            salt = self.salt_resolver.resolve(token, claims)
            state = self._advance(state, CallbackState.SALT_RESOLVED)

            user_address = claims_to_address(claims, int(salt))
            if store.find_account(user_address) is not None:
                raise DuplicateAccount("Already logged in with this account.", user_address=user_address)

            state = self._advance(state, CallbackState.PROOF_REQUESTED)
            zk_proofs = self.prover.request_proof(
                jwt=token,
                extended_ephemeral_public_key=keypair.extended_public_key(),
                max_epoch=setup.expiry_epoch,
                randomness=setup.randomness,
                salt=salt,
                key_claim_name="sub",
            )
        except ZkLoginError as e:
            logger.warning("Login failed in state %s: %s (%s)", state.value, e.code, e.message)
            self._advance(state, CallbackState.FAILED)
            raise
        except ValueError as e:
            # Corrupt SetupData key or unusable claim lengths.
            logger.warning("Login failed in state %s: %s", state.value, e)
            self._advance(state, CallbackState.FAILED)
            raise MalformedIdentityToken("Login data could not be processed.", detail=str(e)) from e

        account = AccountData(
            provider=setup.provider,
            user_address=user_address,
            zk_proofs=zk_proofs,
            ephemeral_private_key=setup.ephemeral_private_key,
            user_salt=salt,
            subject=claims.subject,
            audience=claims.audience,
            issuer=claims.issuer,
            expiry_epoch=setup.expiry_epoch,
        )
        store.save_account(account)
        self._advance(state, CallbackState.COMPLETE)
        logger.info("Login complete: provider=%s address=%s", account.provider, account.user_address)
        return account

    @staticmethod
    def _advance(current: CallbackState, new: CallbackState) -> CallbackState:
        logger.debug("Callback state %s -> %s", current.value, new.value)
        return new
