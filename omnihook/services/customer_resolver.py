"""
Customer resolution and lazy creation.

The first inbound event from an unseen platform user creates the Customer
and its identity row together. Concurrent first events race on the
``customer_identities`` unique constraint; the loser re-reads the winner.
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from omnihook.core.background import TaskTracker
from omnihook.core.config.settings import Settings, settings
from omnihook.core.errors import EnrichmentError
from omnihook.core.logging.logger import get_logger
from omnihook.database.models import Customer, CustomerIdentity, PlatformAccount
from omnihook.database.session_manager import SessionManager
from omnihook.schemas.core.types import PlatformType
from omnihook.services.profile_enrichment import CustomerProfile, ProfileFetcher


class CustomerResolver:
    """Finds or creates the customer behind a platform user id."""

    def __init__(
        self,
        session_manager: SessionManager,
        profile_fetcher: ProfileFetcher | None = None,
        tracker: TaskTracker | None = None,
        config: Settings | None = None,
    ):
        self.session_manager = session_manager
        self.profile_fetcher = profile_fetcher
        self.tracker = tracker
        self.settings = config or settings
        self.logger = get_logger(__name__)

    async def resolve(
        self,
        account: PlatformAccount,
        platform: PlatformType,
        customer_external_id: str,
        display_name: str | None = None,
    ) -> Customer:
        """
        Find the customer for a platform user, creating it if needed.

        Args:
            account: Resolved account; its organization owns the customer
            platform: Platform of the event
            customer_external_id: Platform user id (PSID, LINE user id, wa_id)
            display_name: Name carried by the payload, if any

        Returns:
            The existing or newly created Customer
        """
        organization_id = account.organization_id
        customer = await self._find(organization_id, platform, customer_external_id)

        if customer is None:
            try:
                customer = await self.session_manager.run(
                    lambda session: self._create(
                        session, account, platform, customer_external_id, display_name
                    ),
                    "Customer create",
                )
                self.logger.info(
                    f"Created customer {customer.id} for {platform.value} user "
                    f"{customer_external_id}"
                )
            except IntegrityError:
                # Lost the race against a concurrent first event
                customer = await self._find(organization_id, platform, customer_external_id)
                if customer is None:
                    raise
                self.logger.debug(
                    f"Customer for {platform.value} user {customer_external_id} "
                    "was created concurrently"
                )

        elif display_name and not customer.identity(platform).get("display_name"):
            updated = await self._apply_profile(
                customer.id,
                platform,
                CustomerProfile(
                    platform_user_id=customer_external_id, display_name=display_name
                ),
                mark_synced=False,
            )
            customer = updated or customer

        self._schedule_enrichment(customer, account, platform, customer_external_id)
        return customer

    async def _find(
        self, organization_id: str, platform: PlatformType, external_id: str
    ) -> Customer | None:
        async def lookup(session: AsyncSession) -> Customer | None:
            statement = (
                select(Customer)
                .join(CustomerIdentity, CustomerIdentity.customer_id == Customer.id)
                .where(
                    CustomerIdentity.organization_id == organization_id,
                    CustomerIdentity.platform == platform,
                    CustomerIdentity.external_id == external_id,
                )
            )
            result = await session.execute(statement)
            return result.scalars().first()

        return await self.session_manager.run(lookup, "Customer lookup")

    @staticmethod
    async def _create(
        session: AsyncSession,
        account: PlatformAccount,
        platform: PlatformType,
        external_id: str,
        display_name: str | None,
    ) -> Customer:
        customer = Customer(
            organization_id=account.organization_id,
            display_name=display_name,
            platform_identities={
                platform.value: {
                    "id": external_id,
                    "account_id": account.account_id,
                    "display_name": display_name,
                }
            },
        )
        session.add(customer)
        await session.flush()

        session.add(
            CustomerIdentity(
                organization_id=account.organization_id,
                platform=platform,
                external_id=external_id,
                customer_id=customer.id,
            )
        )
        await session.flush()
        return customer

    # ------------------------------------------------------------------
    # Enrichment
    # ------------------------------------------------------------------

    def _schedule_enrichment(
        self,
        customer: Customer,
        account: PlatformAccount,
        platform: PlatformType,
        external_id: str,
    ) -> None:
        if not (self.settings.enrichment_enabled and self.profile_fetcher and self.tracker):
            return
        if not customer.needs_enrichment(platform):
            return

        self.tracker.spawn(
            self.enrich(customer.id, account, platform, external_id),
            name=f"enrich-{platform.value}-{external_id}",
        )

    async def enrich(
        self,
        customer_id: UUID,
        account: PlatformAccount,
        platform: PlatformType,
        external_id: str,
    ) -> Customer | None:
        """
        Fetch the provider profile and merge it into the customer.

        Enrichment errors are logged and swallowed.

        Returns:
            The updated customer, or None when nothing was applied
        """
        try:
            profile = await self.profile_fetcher.fetch_profile(platform, external_id, account)
        except EnrichmentError as e:
            self.logger.warning(
                f"Profile enrichment failed for {platform.value} user {external_id}: {e}"
            )
            return None

        if profile is None:
            profile = CustomerProfile(platform_user_id=external_id)

        return await self._apply_profile(customer_id, platform, profile, mark_synced=True)

    async def _apply_profile(
        self,
        customer_id: UUID,
        platform: PlatformType,
        profile: CustomerProfile,
        mark_synced: bool,
    ) -> Customer | None:
        async def apply(session: AsyncSession) -> Customer | None:
            customer = await session.get(Customer, customer_id)
            if customer is None:
                return None

            now = datetime.now(UTC)
            identity = customer.identity(platform)
            for key in ("display_name", "avatar_url", "locale", "timezone"):
                value = getattr(profile, key)
                if value:
                    identity[key] = value
            identity.setdefault("id", profile.platform_user_id)
            if mark_synced:
                identity["last_synced_at"] = now.isoformat()

            # Reassign so the JSON column is flagged dirty
            customer.platform_identities = {
                **customer.platform_identities,
                platform.value: identity,
            }
            customer.display_name = customer.display_name or profile.display_name
            customer.avatar_url = customer.avatar_url or profile.avatar_url
            customer.locale = customer.locale or profile.locale
            customer.timezone = customer.timezone or profile.timezone
            customer.updated_at = now
            session.add(customer)
            return customer

        return await self.session_manager.run(apply, "Customer profile update")
