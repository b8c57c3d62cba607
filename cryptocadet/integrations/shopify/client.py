"""Shopify GraphQL Admin API client using httpx."""

import logging
from typing import Any

import httpx

from cryptocadet.core.config import settings
from cryptocadet.integrations.shopify.webhooks import WEBHOOK_TOPICS

logger = logging.getLogger(__name__)


SCRIPT_TAG_CREATE = """
mutation ScriptTagCreate($input: ScriptTagInput!) {
  scriptTagCreate(input: $input) {
    scriptTag { id src displayScope }
    userErrors { field message }
  }
}
"""

SCRIPT_TAG_DELETE = """
mutation ScriptTagDelete($id: ID!) {
  scriptTagDelete(id: $id) {
    deletedScriptTagId
    userErrors { field message }
  }
}
"""

SCRIPT_TAGS_BY_SRC = """
query ScriptTags($src: URL) {
  scriptTags(first: 50, src: $src) {
    nodes { id src }
  }
}
"""

WEBHOOK_SUBSCRIPTION_CREATE = """
mutation WebhookSubscriptionCreate($topic: WebhookSubscriptionTopic!, $webhookSubscription: WebhookSubscriptionInput!) {
  webhookSubscriptionCreate(topic: $topic, webhookSubscription: $webhookSubscription) {
    webhookSubscription { id topic }
    userErrors { field message }
  }
}
"""


class ShopifyAPIError(Exception):
    """Raised when the Admin API returns errors or user errors."""

    def __init__(self, message: str, errors: list[Any] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class ShopifyClient:
    """Async client for the Shopify GraphQL Admin API."""

    def __init__(self, shop_domain: str, access_token: str) -> None:
        self.shop_domain = shop_domain
        self.graphql_url = (
            f"https://{shop_domain}/admin/api/{settings.shopify_api_version}/graphql.json"
        )
        self.headers = {
            "X-Shopify-Access-Token": access_token,
            "Content-Type": "application/json",
        }

    async def graphql(self, query: str, variables: dict[str, Any] | None = None) -> dict[str, Any]:
        """Run a query or mutation and return its ``data`` object.

        Raises:
            httpx.HTTPStatusError: On a non-2xx response.
            ShopifyAPIError: If the response carries top-level errors or no data.
        """
        async with httpx.AsyncClient(headers=self.headers, timeout=30.0) as client:
            response = await client.post(
                self.graphql_url,
                json={"query": query, "variables": variables or {}},
            )
            response.raise_for_status()
            payload: dict[str, Any] = response.json()

        if payload.get("errors"):
            raise ShopifyAPIError(f"GraphQL errors from {self.shop_domain}", payload["errors"])
        if "data" not in payload:
            raise ShopifyAPIError(f"Unexpected GraphQL response from {self.shop_domain}")
        data: dict[str, Any] = payload["data"]
        return data

    async def create_script_tag(self, src: str) -> str:
        """Register a storefront script tag and return its gid."""
        data = await self.graphql(
            SCRIPT_TAG_CREATE,
            {"input": {"src": src, "displayScope": "ONLINE_STORE", "cache": False}},
        )
        result = data["scriptTagCreate"]
        _raise_user_errors("scriptTagCreate", result)
        script_tag_id: str = result["scriptTag"]["id"]
        logger.info("Created script tag %s for %s", script_tag_id, self.shop_domain)
        return script_tag_id

    async def delete_script_tag(self, script_tag_id: str) -> None:
        """Remove a script tag by gid."""
        data = await self.graphql(SCRIPT_TAG_DELETE, {"id": script_tag_id})
        _raise_user_errors("scriptTagDelete", data["scriptTagDelete"])

    async def list_script_tags(self, src: str) -> list[str]:
        """Return gids of script tags already pointing at ``src``."""
        data = await self.graphql(SCRIPT_TAGS_BY_SRC, {"src": src})
        return [node["id"] for node in data["scriptTags"]["nodes"]]

    async def register_webhooks(self, base_url: str) -> dict[str, str]:
        """Subscribe to every topic in WEBHOOK_TOPICS.

        Failures are logged and skipped so one bad topic doesn't block the rest.

        Returns:
            Mapping of topic to webhook subscription gid for the topics that succeeded.
        """
        subscriptions: dict[str, str] = {}
        base = base_url.rstrip("/")

        for topic, path in WEBHOOK_TOPICS.items():
            try:
                data = await self.graphql(
                    WEBHOOK_SUBSCRIPTION_CREATE,
                    {
                        "topic": topic,
                        "webhookSubscription": {
                            "callbackUrl": f"{base}{path}",
                            "format": "JSON",
                        },
                    },
                )
                result = data["webhookSubscriptionCreate"]
                _raise_user_errors("webhookSubscriptionCreate", result)
            except (httpx.HTTPError, ShopifyAPIError) as e:
                logger.warning(
                    "Failed to register webhook %s for %s: %s",
                    topic,
                    self.shop_domain,
                    e,
                )
                continue
            subscriptions[topic] = result["webhookSubscription"]["id"]

        return subscriptions


def _raise_user_errors(operation: str, result: dict[str, Any]) -> None:
    user_errors = result.get("userErrors") or []
    if user_errors:
        messages = "; ".join(str(e.get("message", "")) for e in user_errors)
        raise ShopifyAPIError(f"{operation} failed: {messages}", user_errors)
