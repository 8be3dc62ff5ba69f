"""
Tenant resolution: which organization owns the account a webhook targets.
"""

from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from omnihook.core.errors import ConfigurationError
from omnihook.core.logging.logger import get_logger
from omnihook.database.models import PlatformAccount
from omnihook.database.session_manager import SessionManager
from omnihook.schemas.core.types import ErrorCode, PlatformType


class TenantResolver:
    """Maps (platform, external account id) to the active PlatformAccount."""

    def __init__(self, session_manager: SessionManager):
        self.session_manager = session_manager
        self.logger = get_logger(__name__)

    async def resolve(self, platform: PlatformType, account_external_id: str) -> PlatformAccount:
        """
        Find the single active account for a platform account id.

        Only an exact match counts. An account id connected (and active) in
        more than one organization cannot be attributed and is rejected
        rather than guessed.

        Args:
            platform: Platform of the webhook
            account_external_id: Page, channel or phone number id from the payload

        Returns:
            The matching PlatformAccount; its organization_id is the tenant

        Raises:
            ConfigurationError: No active match, or more than one
        """

        async def lookup(session: AsyncSession) -> list[PlatformAccount]:
            statement = select(PlatformAccount).where(
                PlatformAccount.platform == platform,
                PlatformAccount.account_id == account_external_id,
                PlatformAccount.is_active.is_(True),
            )
            result = await session.execute(statement)
            return list(result.scalars().all())

        accounts = await self.session_manager.run(lookup, "Tenant lookup")

        if not accounts:
            raise ConfigurationError(
                f"No active {platform.value} account '{account_external_id}'",
                ErrorCode.TENANT_NOT_FOUND,
                platform,
            )

        if len(accounts) > 1:
            organizations = sorted({account.organization_id for account in accounts})
            self.logger.error(
                f"{platform.value} account '{account_external_id}' is active in "
                f"{len(organizations)} organizations: {organizations}"
            )
            raise ConfigurationError(
                f"{platform.value} account '{account_external_id}' is active in "
                "more than one organization",
                ErrorCode.TENANT_AMBIGUOUS,
                platform,
            )

        return accounts[0]
