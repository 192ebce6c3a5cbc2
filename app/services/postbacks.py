"""
Postback dispatch: validate -> authenticate -> deduplicate -> credit / reverse / ignore.

Authentication and validation failures raise; everything after authentication is
caught and returned as a Diagnostic so providers always get their acknowledgement.
Retries stay safe regardless: the transaction key makes every write at-most-once.
"""

from app.core.exceptions import AuthenticationError, NotFoundError, ValidationError
from app.core.logging import bind_postback, get_logger
from app.core.security import verify_digest_hash, verify_hmac_signature
from app.services.idempotency import IdempotencyGuard
from app.services.ledger import LedgerApplier
from app.services.outcomes import Diagnostic, Outcome, OutcomeStatus, PostbackResult
from app.services.providers import MUTATING_EVENTS, AuthScheme, EventKind, Notification, ProviderConfig
from app.services.reversal import ReversalResolver
from app.store.base import PostbackStore

log = get_logger(__name__)


class PostbackDispatcher:
    def __init__(self, store: PostbackStore, providers: dict[str, ProviderConfig]):
        self.store = store
        self.providers = providers
        self.guard = IdempotencyGuard(store)
        self.ledger = LedgerApplier(store, providers)
        self.reversals = ReversalResolver(store, providers)

    def provider(self, name: str) -> ProviderConfig:
        config = self.providers.get(name)
        if config is None:
            raise NotFoundError(f"Provider {name} is not enabled")
        return config

    def authenticate(self, config: ProviderConfig, notification: Notification, raw_body: bytes = b"") -> bool:
        """True if the credential verified, False if accepted unsigned. Raises on a bad credential."""
        credential = notification.credential
        if config.scheme == AuthScheme.HMAC:
            if not credential:
                if config.allow_unsigned:
                    log.warning("signature_missing", provider=config.name, transaction_id=notification.transaction_id)
                    return False
                raise AuthenticationError("Missing signature", status_code=config.auth_failure_status)
            if not verify_hmac_signature(raw_body, credential, config.secret, body=notification.offer.raw):
                log.warning("signature_invalid", provider=config.name, transaction_id=notification.transaction_id)
                raise AuthenticationError("Invalid signature", status_code=config.auth_failure_status)
            return True

        if not verify_digest_hash(
            notification.transaction_id or "",
            credential or "",
            config.secret,
            config.hash_algorithm,
        ):
            log.warning("hash_invalid", provider=config.name, transaction_id=notification.transaction_id)
            raise AuthenticationError("Invalid hash", status_code=config.auth_failure_status)
        return True

    async def dispatch(self, notification: Notification, raw_body: bytes = b"") -> PostbackResult:
        config = self.provider(notification.provider)
        bind_postback(config.name, notification.transaction_id)
        log.info(
            "postback_received",
            raw_event=notification.raw_event,
            kind=notification.event.value,
            player_id=notification.player_id,
            offer_id=notification.offer.offer_id,
            payout=str(notification.payout),
        )
        if notification.event in MUTATING_EVENTS and not notification.transaction_id:
            raise ValidationError("Missing transaction id", details={"required": ["conversion_id", "trans_id"]})
        verified = self.authenticate(config, notification, raw_body)

        try:
            outcome = await self._handle(config, notification)
        except Exception as e:
            log.exception("postback_failed", error=str(e))
            code = getattr(e, "code", "INTERNAL_ERROR")
            return PostbackResult(
                provider=config.name,
                diagnostic=Diagnostic(code=code, message=str(e), exc_type=type(e).__name__),
            )
        log.info("postback_handled", status=outcome.status.value, points=outcome.points, verified=verified)
        return PostbackResult(provider=config.name, outcome=outcome)

    async def _handle(self, config: ProviderConfig, n: Notification) -> Outcome:
        if n.event == EventKind.TEST:
            return Outcome(status=OutcomeStatus.TEST, transaction_id=n.transaction_id)
        if n.event == EventKind.UNKNOWN:
            log.info("postback_ignored", raw_event=n.raw_event)
            return Outcome(status=OutcomeStatus.IGNORED, transaction_id=n.transaction_id)
        if n.event in (EventKind.REVERSAL, EventKind.FRAUD):
            return await self.reversals.reverse(
                config.name,
                n.transaction_id,
                n.offer.raw,
                fraud=n.event == EventKind.FRAUD,
            )

        if await self.guard.is_duplicate(config.name, n.transaction_id):
            return Outcome(status=OutcomeStatus.DUPLICATE, transaction_id=n.transaction_id)
        return await self.ledger.apply(
            config.name,
            n.transaction_id,
            n.player_id,
            n.user_ref,
            n.payout,
            n.offer,
        )
