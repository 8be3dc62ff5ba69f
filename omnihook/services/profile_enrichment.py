"""
Best-effort customer profile enrichment.

Fetchers call the provider profile endpoints with the account's access
token. They run in background tasks after a customer is resolved; a failed
or slow fetch never fails the event that triggered it.
"""

from abc import ABC, abstractmethod
from typing import Any

import aiohttp
from pydantic import BaseModel, Field

from omnihook.core.config.settings import Settings, settings
from omnihook.core.errors import EnrichmentError
from omnihook.core.logging.logger import get_logger
from omnihook.database.models import PlatformAccount
from omnihook.schemas.core.types import PlatformType

GRAPH_PROFILE_FIELDS: dict[PlatformType, str] = {
    PlatformType.FACEBOOK: "id,name,first_name,last_name,profile_pic,locale,timezone",
    PlatformType.INSTAGRAM: "id,name,username,profile_pic",
}


class CustomerProfile(BaseModel):
    """Profile fields a provider returned for one platform user."""

    platform_user_id: str
    display_name: str | None = None
    avatar_url: str | None = None
    locale: str | None = None
    timezone: str | None = None
    raw: dict[str, Any] = Field(default_factory=dict)


class ProfileFetcher(ABC):
    """Fetches a customer's provider profile."""

    @abstractmethod
    async def fetch_profile(
        self, platform: PlatformType, platform_user_id: str, account: PlatformAccount
    ) -> CustomerProfile | None:
        """
        Fetch the profile of a platform user.

        Args:
            platform: Platform the user belongs to
            platform_user_id: Provider user id (PSID, IGSID, LINE user id)
            account: Account whose token is used for the call

        Returns:
            The profile, or None when the platform has no profile endpoint

        Raises:
            EnrichmentError: If the provider call fails or times out
        """
        pass


class HttpProfileFetcher(ProfileFetcher):
    """Shared aiohttp plumbing for provider profile endpoints."""

    def __init__(self, session: aiohttp.ClientSession, config: Settings | None = None):
        self.session = session
        self.settings = config or settings
        self.logger = get_logger(__name__)

    async def _get_json(
        self,
        platform: PlatformType,
        url: str,
        headers: dict[str, str] | None = None,
        params: dict[str, str] | None = None,
    ) -> dict[str, Any]:
        timeout = aiohttp.ClientTimeout(total=self.settings.enrichment_timeout)
        try:
            async with self.session.get(
                url, headers=headers, params=params, timeout=timeout
            ) as response:
                response.raise_for_status()
                return await response.json()
        except aiohttp.ClientResponseError as http_err:
            raise EnrichmentError(
                f"Profile request failed with HTTP {http_err.status}", platform
            ) from http_err
        except (aiohttp.ClientError, TimeoutError) as e:
            raise EnrichmentError(f"Profile request failed: {e!r}", platform) from e


class GraphProfileFetcher(HttpProfileFetcher):
    """Graph API profiles for Messenger PSIDs and Instagram IGSIDs."""

    async def fetch_profile(
        self, platform: PlatformType, platform_user_id: str, account: PlatformAccount
    ) -> CustomerProfile | None:
        if not account.access_token:
            raise EnrichmentError(
                f"No access token for {platform.value} account {account.account_id}",
                platform,
            )

        url = (
            f"{self.settings.graph_api_base_url}/"
            f"{self.settings.graph_api_version}/{platform_user_id}"
        )
        data = await self._get_json(
            platform,
            url,
            params={
                "fields": GRAPH_PROFILE_FIELDS[platform],
                "access_token": account.access_token,
            },
        )

        name = data.get("name") or " ".join(
            part for part in (data.get("first_name"), data.get("last_name")) if part
        )
        timezone = data.get("timezone")
        return CustomerProfile(
            platform_user_id=platform_user_id,
            display_name=name or data.get("username"),
            avatar_url=data.get("profile_pic"),
            locale=data.get("locale"),
            timezone=str(timezone) if timezone is not None else None,
            raw=data,
        )


class LineProfileFetcher(HttpProfileFetcher):
    """LINE Messaging API ``/v2/bot/profile/{userId}``."""

    async def fetch_profile(
        self, platform: PlatformType, platform_user_id: str, account: PlatformAccount
    ) -> CustomerProfile | None:
        if not account.access_token:
            raise EnrichmentError(
                f"No channel access token for LINE account {account.account_id}",
                platform,
            )

        data = await self._get_json(
            platform,
            f"{self.settings.line_api_base_url}/v2/bot/profile/{platform_user_id}",
            headers={"Authorization": f"Bearer {account.access_token}"},
        )
        return CustomerProfile(
            platform_user_id=platform_user_id,
            display_name=data.get("displayName"),
            avatar_url=data.get("pictureUrl"),
            locale=data.get("language"),
            raw=data,
        )


class CompositeProfileFetcher(ProfileFetcher):
    """Routes each platform to its fetcher; platforms without one return None."""

    def __init__(self, fetchers: dict[PlatformType, ProfileFetcher]):
        self.fetchers = fetchers

    @classmethod
    def for_session(
        cls, session: aiohttp.ClientSession, config: Settings | None = None
    ) -> "CompositeProfileFetcher":
        """Build the default routing (Graph API for Meta, LINE API for LINE)."""
        graph = GraphProfileFetcher(session, config)
        return cls(
            {
                PlatformType.FACEBOOK: graph,
                PlatformType.INSTAGRAM: graph,
                PlatformType.LINE: LineProfileFetcher(session, config),
            }
        )

    async def fetch_profile(
        self, platform: PlatformType, platform_user_id: str, account: PlatformAccount
    ) -> CustomerProfile | None:
        fetcher = self.fetchers.get(platform)
        if fetcher is None:
            return None
        return await fetcher.fetch_profile(platform, platform_user_id, account)
