"""
Webhook gateway: the ingestion pipeline behind the HTTP routes.

A delivery is verified and split as a whole; each provider event is then
normalized, attributed to a tenant and persisted on its own. A failure in
one event is dead-lettered and never aborts its siblings.
"""

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from omnihook.core.background import TaskTracker
from omnihook.core.config.settings import Settings, settings
from omnihook.core.errors import IngestionError, MalformedPayloadError
from omnihook.core.logging.context import clear_event_context, set_request_context
from omnihook.core.logging.logger import get_logger
from omnihook.database.models import PlatformAccount
from omnihook.database.session_manager import SessionManager
from omnihook.processors.base_processor import BaseWebhookProcessor
from omnihook.processors.challenge import ChallengeResponder
from omnihook.processors.factory import ProcessorFactory
from omnihook.processors.signature import SignatureVerifier
from omnihook.realtime.publisher import LoggingRealtimePublisher, RealtimePublisher
from omnihook.schemas.core.events import (
    ProcessedWebhookEvent,
    ProviderEvent,
    RealtimeNotification,
)
from omnihook.schemas.core.types import EventKind, MessageStatus, PlatformType, SenderType
from omnihook.services.conversation_resolver import ConversationResolver
from omnihook.services.customer_resolver import CustomerResolver
from omnihook.services.dead_letter import DeadLetterStore
from omnihook.services.message_writer import MessageWriter
from omnihook.services.profile_enrichment import ProfileFetcher
from omnihook.services.status_propagator import StatusPropagator, StatusUpdateResult
from omnihook.services.tenant_resolver import TenantResolver


class EventOutcome(str, Enum):
    """What happened to one provider event."""

    PROCESSED = "processed"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    FAILED = "failed"


@dataclass
class DeliveryResult:
    """Per-delivery counters."""

    platform: PlatformType
    received: int = 0
    processed: int = 0
    duplicates: int = 0
    ignored: int = 0
    failed: int = 0
    dead_letter_ids: list[UUID] = field(default_factory=list)

    def add(self, outcome: EventOutcome) -> None:
        if outcome == EventOutcome.PROCESSED:
            self.processed += 1
        elif outcome == EventOutcome.DUPLICATE:
            self.duplicates += 1
        elif outcome == EventOutcome.IGNORED:
            self.ignored += 1
        else:
            self.failed += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "platform": self.platform.value,
            "received": self.received,
            "processed": self.processed,
            "duplicates": self.duplicates,
            "ignored": self.ignored,
            "failed": self.failed,
            "dead_letter_ids": [str(entry_id) for entry_id in self.dead_letter_ids],
        }


class WebhookGateway:
    """
    Orchestrates verification, normalization, persistence and fan-out.

    All collaborators are injected; the gateway itself holds no per-request
    state, so one instance serves concurrent deliveries.
    """

    def __init__(
        self,
        session_manager: SessionManager,
        publisher: RealtimePublisher | None = None,
        profile_fetcher: ProfileFetcher | None = None,
        tracker: TaskTracker | None = None,
        processors: ProcessorFactory | None = None,
        config: Settings | None = None,
    ):
        self.settings = config or settings
        self.session_manager = session_manager
        self.publisher = publisher or LoggingRealtimePublisher(self.settings)
        self.tracker = tracker or TaskTracker()
        self.processors = processors or ProcessorFactory(SignatureVerifier(self.settings))
        self.challenge = ChallengeResponder(self.settings)

        self.tenants = TenantResolver(session_manager)
        self.customers = CustomerResolver(
            session_manager, profile_fetcher, self.tracker, self.settings
        )
        self.conversations = ConversationResolver(session_manager)
        self.messages = MessageWriter(session_manager)
        self.statuses = StatusPropagator(session_manager)
        self.dead_letters = DeadLetterStore(session_manager)

        self.logger = get_logger(__name__)

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    def verify_challenge(
        self,
        platform: str | PlatformType,
        mode: str | None,
        token: str | None,
        challenge: str | None,
    ) -> str:
        """
        Answer a subscription handshake.

        Raises:
            UnknownPlatformError: Platform is not registered
            ChallengeNotSupportedError: Platform has no handshake
            AuthenticationError: Token mismatch or missing configuration
        """
        platform_type = self.processors.parse_platform(platform)
        return self.challenge.respond(platform_type, mode, token, challenge)

    async def accept(
        self, platform: str | PlatformType, raw_body: bytes, headers: Mapping[str, str]
    ) -> list[ProviderEvent]:
        """
        Verify a delivery and split it into provider events.

        Args:
            platform: Platform enum or route name
            raw_body: Unparsed request body, exactly as received
            headers: Request headers

        Returns:
            Provider events in arrival order

        Raises:
            UnknownPlatformError: Platform is not registered
            AuthenticationError: Signature missing or invalid
            MalformedPayloadError: Body is not JSON or not a known envelope
                (already dead-lettered)
        """
        _, events = await self.accept_delivery(platform, raw_body, headers)
        return events

    async def accept_delivery(
        self, platform: str | PlatformType, raw_body: bytes, headers: Mapping[str, str]
    ) -> tuple[Any, list[ProviderEvent]]:
        """Like accept(), also returning the parsed payload for dead-letter records."""
        processor = self.processors.get_processor(platform)
        set_request_context(platform=processor.platform.value)

        processor.verifier.require_valid(processor.platform, raw_body, headers)

        try:
            payload = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            error = MalformedPayloadError(
                f"{processor.platform.value}: body is not valid JSON", processor.platform
            )
            await self._dead_letter(
                processor.platform,
                error,
                raw_payload={"body": raw_body.decode("utf-8", errors="replace")},
            )
            raise error from e

        try:
            events = processor.split_events(payload)
        except MalformedPayloadError as e:
            await self._dead_letter(
                processor.platform,
                e,
                raw_payload=payload if isinstance(payload, dict) else {"body": payload},
            )
            raise

        self.logger.debug(f"Accepted {len(events)} event(s) from {processor.platform.value}")
        return payload, events

    async def handle_delivery(
        self, platform: str | PlatformType, raw_body: bytes, headers: Mapping[str, str]
    ) -> DeliveryResult:
        """Accept and process a delivery in one go."""
        payload, events = await self.accept_delivery(platform, raw_body, headers)
        return await self.process(
            platform, events, raw_payload=payload if isinstance(payload, dict) else None
        )

    async def process(
        self,
        platform: str | PlatformType,
        provider_events: list[ProviderEvent],
        raw_payload: dict[str, Any] | None = None,
        record_failures: bool = True,
    ) -> DeliveryResult:
        """
        Ingest provider events sequentially, in arrival order.

        Args:
            platform: Platform enum or route name
            provider_events: Events returned by accept
            raw_payload: Whole delivery, kept on dead-letter entries
            record_failures: Dead-letter failed events (off for replays)

        Returns:
            DeliveryResult counters
        """
        processor = self.processors.get_processor(platform)
        result = DeliveryResult(platform=processor.platform, received=len(provider_events))
        set_request_context(platform=processor.platform.value)

        for provider_event in provider_events:
            outcome, dead_letter_id = await self._process_event(
                processor, provider_event, raw_payload, record_failures
            )
            result.add(outcome)
            if dead_letter_id is not None:
                result.dead_letter_ids.append(dead_letter_id)

        log = self.logger.warning if result.failed else self.logger.info
        log(
            f"Delivery from {processor.platform.value}: {result.processed} processed, "
            f"{result.duplicates} duplicate(s), {result.ignored} ignored, "
            f"{result.failed} failed"
        )
        return result

    async def replay_dead_letter(self, dead_letter_id: UUID) -> DeliveryResult:
        """
        Re-run a dead-lettered event through the pipeline.

        Already-ingested messages come back as duplicates, so replaying is
        safe. The entry is marked resolved when nothing fails.

        Raises:
            LookupError: No entry with that id
        """
        entry = await self.dead_letters.get(dead_letter_id)
        if entry is None:
            raise LookupError(f"Dead letter {dead_letter_id} not found")

        processor = self.processors.get_processor(entry.platform)
        result = DeliveryResult(platform=processor.platform)

        try:
            if entry.provider_event:
                events = [ProviderEvent.model_validate(entry.provider_event)]
            elif entry.raw_payload is not None:
                events = processor.split_events(entry.raw_payload)
            else:
                events = []
        except MalformedPayloadError as e:
            self.logger.warning(f"Dead letter {dead_letter_id} is still malformed: {e}")
            result.failed = 1
            await self.dead_letters.mark_replayed(dead_letter_id, resolved=False)
            return result

        result = await self.process(
            processor.platform, events, raw_payload=entry.raw_payload, record_failures=False
        )
        await self.dead_letters.mark_replayed(
            dead_letter_id, resolved=result.failed == 0 and result.received > 0
        )
        return result

    # ------------------------------------------------------------------
    # Per-event pipeline
    # ------------------------------------------------------------------

    async def _process_event(
        self,
        processor: BaseWebhookProcessor,
        provider_event: ProviderEvent,
        raw_payload: dict[str, Any] | None,
        record_failures: bool,
    ) -> tuple[EventOutcome, UUID | None]:
        event: ProcessedWebhookEvent | None = None
        organization_id: str | None = None

        try:
            event = processor.normalize_event(provider_event)
            if event is None:
                return EventOutcome.IGNORED, None

            set_request_context(customer_id=event.external_customer_id)
            account = await self.tenants.resolve(event.platform, event.account_external_id)
            organization_id = account.organization_id
            set_request_context(organization_id=organization_id)

            return await self._ingest(account, event), None

        except Exception as e:
            if isinstance(e, IngestionError):
                self.logger.error(
                    f"Event {provider_event.index} failed ({e.error_code.value}): {e}"
                )
            else:
                self.logger.exception(f"Event {provider_event.index} failed unexpectedly: {e}")

            if not record_failures:
                return EventOutcome.FAILED, None

            entry_id = await self._dead_letter(
                processor.platform,
                e,
                raw_payload=raw_payload,
                provider_event=provider_event,
                event_snapshot=event,
                organization_id=organization_id,
            )
            return EventOutcome.FAILED, entry_id

        finally:
            clear_event_context()

    async def _ingest(self, account: PlatformAccount, event: ProcessedWebhookEvent) -> EventOutcome:
        if event.is_receipt:
            return await self._ingest_receipt(account, event)
        if event.event_kind.creates_message:
            return await self._ingest_message(account, event)
        if event.event_kind == EventKind.USER_SUBSCRIBED:
            return await self._ingest_subscription(account, event)

        # Unsubscribe: keep the customer known, nothing else to store
        await self.customers.resolve(
            account, event.platform, event.external_customer_id, event.customer_name
        )
        self.logger.info(f"Customer {event.external_customer_id} unsubscribed")
        return EventOutcome.PROCESSED

    async def _ingest_message(
        self, account: PlatformAccount, event: ProcessedWebhookEvent
    ) -> EventOutcome:
        customer = await self.customers.resolve(
            account, event.platform, event.external_customer_id, event.customer_name
        )
        conversation = await self.conversations.resolve(
            account.organization_id,
            event.platform,
            event.external_conversation_id,
            customer_id=customer.id,
            platform_account_id=account.id,
        )

        is_customer = event.sender_type == SenderType.CUSTOMER
        write = await self.messages.write(
            conversation_id=conversation.id,
            platform_message_id=event.external_message_id,
            sender_type=event.sender_type,
            sender_id=event.external_customer_id if is_customer else event.sender_external_id,
            message_type=event.message_type,
            content=event.content,
            status=MessageStatus.DELIVERED if is_customer else MessageStatus.SENT,
            timestamp=event.timestamp,
        )
        if not write.created:
            return EventOutcome.DUPLICATE

        self._publish(
            RealtimeNotification(
                organization_id=account.organization_id,
                conversation_id=str(conversation.id),
                message_id=str(write.message.id),
                message_ids=[event.external_message_id],
                platform=event.platform,
                event_kind=event.event_kind,
                timestamp=event.timestamp,
            )
        )
        self.logger.info(f"Ingested {event.summary()}")
        return EventOutcome.PROCESSED

    async def _ingest_receipt(
        self, account: PlatformAccount, event: ProcessedWebhookEvent
    ) -> EventOutcome:
        status = event.receipt_status
        results: list[StatusUpdateResult] = []

        if event.receipt_message_ids:
            results.append(
                await self.statuses.update_by_ids(
                    account.organization_id,
                    event.platform,
                    event.external_conversation_id,
                    event.receipt_message_ids,
                    status,
                    at=event.timestamp,
                    error=event.error_message,
                )
            )
        if event.watermark is not None:
            results.append(
                await self.statuses.update_by_watermark(
                    account.organization_id,
                    event.platform,
                    event.external_conversation_id,
                    before=event.watermark,
                    status=status,
                )
            )

        updated: dict[UUID, list[str]] = {}
        for result in results:
            for conversation_id, message_ids in result.updated.items():
                updated.setdefault(conversation_id, []).extend(message_ids)

        for conversation_id, message_ids in updated.items():
            self._publish(
                RealtimeNotification(
                    organization_id=account.organization_id,
                    conversation_id=str(conversation_id),
                    message_ids=message_ids,
                    platform=event.platform,
                    event_kind=event.event_kind,
                    timestamp=event.timestamp,
                )
            )

        self.logger.debug(
            f"Receipt {event.summary()} updated "
            f"{sum(len(ids) for ids in updated.values())} message(s)"
        )
        return EventOutcome.PROCESSED

    async def _ingest_subscription(
        self, account: PlatformAccount, event: ProcessedWebhookEvent
    ) -> EventOutcome:
        customer = await self.customers.resolve(
            account, event.platform, event.external_customer_id, event.customer_name
        )
        conversation = await self.conversations.resolve(
            account.organization_id,
            event.platform,
            event.external_conversation_id,
            customer_id=customer.id,
            platform_account_id=account.id,
        )
        self._publish(
            RealtimeNotification(
                organization_id=account.organization_id,
                conversation_id=str(conversation.id),
                platform=event.platform,
                event_kind=event.event_kind,
                timestamp=event.timestamp,
            )
        )
        return EventOutcome.PROCESSED

    # ------------------------------------------------------------------
    # Side channels
    # ------------------------------------------------------------------

    def _publish(self, notification: RealtimeNotification) -> None:
        self.tracker.spawn(
            self.publisher.notify(notification),
            name=f"publish-{notification.conversation_id}",
        )

    async def _dead_letter(
        self,
        platform: PlatformType,
        error: Exception,
        raw_payload: dict[str, Any] | None = None,
        provider_event: ProviderEvent | None = None,
        event_snapshot: ProcessedWebhookEvent | None = None,
        organization_id: str | None = None,
    ) -> UUID | None:
        try:
            entry = await self.dead_letters.record(
                platform,
                error,
                raw_payload=raw_payload,
                provider_event=provider_event,
                event_snapshot=event_snapshot,
                organization_id=organization_id,
            )
            return entry.id
        except Exception as e:
            self.logger.critical(
                f"Could not dead-letter {platform.value} event ({error}): {e}",
                exc_info=True,
            )
            return None
