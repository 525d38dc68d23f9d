"""Publishing generated posts to LinkedIn and Facebook Pages.

Publishing is not idempotent on either platform, so unlike the bot adapters
these calls are never retried automatically.
"""

from __future__ import annotations

import httpx
import structlog

from src.notetaker.content.schemas import SocialConnection, SocialPlatform
from src.notetaker.core.errors import ConfigurationError, raise_for_vendor_status

logger = structlog.get_logger(__name__)


class SocialPublisher:
    """Posts text to a user's connected social account.

    Args:
        linkedin_api_url: LinkedIn REST root (v2).
        facebook_graph_url: Facebook Graph API root including version.
        timeout: Per-request timeout in seconds.
    """

    def __init__(
        self,
        linkedin_api_url: str = "https://api.linkedin.com/v2",
        facebook_graph_url: str = "https://graph.facebook.com/v18.0",
        timeout: float = 30.0,
    ) -> None:
        self._linkedin_api_url = linkedin_api_url.rstrip("/")
        self._facebook_graph_url = facebook_graph_url.rstrip("/")
        self._timeout = timeout

    async def publish(self, content: str, connection: SocialConnection) -> str:
        """Publish ``content`` and return the platform's post id.

        Raises:
            ConfigurationError: The connection lacks what the platform needs.
            VendorError: The platform rejected the post.
        """
        if connection.platform is SocialPlatform.LINKEDIN:
            return await self.publish_to_linkedin(content, connection)
        return await self.publish_to_facebook(content, connection)

    async def publish_to_linkedin(self, content: str, connection: SocialConnection) -> str:
        """POST /ugcPosts as the connected member."""
        if not connection.profile_id:
            raise ConfigurationError("LinkedIn connection has no profile id")

        payload = {
            "author": f"urn:li:person:{connection.profile_id}",
            "lifecycleState": "PUBLISHED",
            "specificContent": {
                "com.linkedin.ugc.ShareContent": {
                    "shareCommentary": {"text": content},
                    "shareMediaCategory": "NONE",
                },
            },
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }
        headers = {
            "Authorization": f"Bearer {connection.access_token}",
            "X-Restli-Protocol-Version": "2.0.0",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                f"{self._linkedin_api_url}/ugcPosts",
                json=payload,
                headers=headers,
            )
        raise_for_vendor_status("linkedin", response)

        post_id = response.json().get("id") or response.headers.get("x-restli-id", "")
        logger.info("content.linkedin_published", user_id=connection.user_id, post_id=post_id)
        return post_id

    async def publish_to_facebook(self, content: str, connection: SocialConnection) -> str:
        """POST /{page_id}/feed with the page access token.

        Facebook only allows API posts to Pages, never personal profiles.
        """
        if not connection.page_id or not connection.page_access_token:
            raise ConfigurationError(
                "Facebook Page not connected. Personal profiles cannot be used for posting."
            )

        async with httpx.AsyncClient(timeout=self._timeout) as client:
            response = await client.post(
                f"{self._facebook_graph_url}/{connection.page_id}/feed",
                json={"message": content, "access_token": connection.page_access_token},
            )
        raise_for_vendor_status("facebook", response)

        post_id = response.json().get("id", "")
        logger.info("content.facebook_published", user_id=connection.user_id, post_id=post_id)
        return post_id
