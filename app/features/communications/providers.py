"""
Delivery providers for parish messages.

Each transport implements the DeliveryProvider protocol and is registered
under its provider name. Jobs carry the provider name they were queued
with; the registry turns an unknown name into a hard error for that job.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Protocol

from app.config import Settings
from app.features.communications.domain import (
    NO_EMAIL_ON_FILE,
    DeliveryConfig,
    DeliveryRecipient,
    DeliveryResult,
    RecipientFailure,
)
from app.infrastructure.observability.logging import get_logger

logger = get_logger(__name__)

MOCK_PROVIDER = "mock"


class DeliveryProviderError(Exception):
    """A provider could not attempt delivery at all (configuration or transport)."""


class UnsupportedDeliveryProviderError(DeliveryProviderError):
    def __init__(self, provider: str | None):
        super().__init__(f"Unsupported parish delivery provider: {provider}")
        self.provider = provider


class DeliveryProvider(Protocol):
    """Delivery contract: one call per job, per-recipient outcomes back."""

    name: str

    async def deliver(
        self, subject: str, body: str, recipients: Sequence[DeliveryRecipient]
    ) -> DeliveryResult:
        """Attempt every recipient; raise DeliveryProviderError only for total failure."""


class MockDeliveryProvider:
    """Deterministic provider for tests and staging; never leaves the process."""

    name = MOCK_PROVIDER

    async def deliver(
        self, subject: str, body: str, recipients: Sequence[DeliveryRecipient]
    ) -> DeliveryResult:
        result = DeliveryResult()
        for recipient in recipients:
            if not recipient.email:
                result.failed.append(
                    RecipientFailure(clerk_user_id=recipient.clerk_user_id, error=NO_EMAIL_ON_FILE)
                )
                continue
            result.sent.append(recipient.clerk_user_id)

        logger.debug(
            "Mock delivery completed",
            subject=subject,
            sent=len(result.sent),
            failed=len(result.failed),
        )
        return result


class DeliveryProviderRegistry:
    def __init__(self, providers: Iterable[DeliveryProvider] = ()):
        self._providers: dict[str, DeliveryProvider] = {}
        for provider in providers:
            self.register(provider)

    def register(self, provider: DeliveryProvider) -> None:
        self._providers[provider.name] = provider

    def get(self, name: str | None) -> DeliveryProvider:
        provider = self._providers.get(name or "")
        if provider is None:
            raise UnsupportedDeliveryProviderError(name)
        return provider

    def names(self) -> list[str]:
        return sorted(self._providers)


def build_provider_registry() -> DeliveryProviderRegistry:
    return DeliveryProviderRegistry([MockDeliveryProvider()])


def get_delivery_config(settings: Settings) -> DeliveryConfig:
    """Delivery is enabled only for a recognised mode; anything else disables it."""
    mode = (settings.PARISH_COMMUNICATIONS_DELIVERY_MODE or "disabled").strip().lower()
    if mode == MOCK_PROVIDER:
        return DeliveryConfig(enabled=True, provider=MOCK_PROVIDER)
    return DeliveryConfig(enabled=False, provider=None)


async def deliver_parish_message(
    registry: DeliveryProviderRegistry,
    provider: str,
    subject: str,
    body: str,
    recipients: Sequence[DeliveryRecipient],
) -> DeliveryResult:
    """
    Dispatch one message through the named provider.

    Recipients without an email fail up front and are never handed to the
    transport, whichever provider is configured.

    Raises:
        UnsupportedDeliveryProviderError: provider name is not registered
        DeliveryProviderError: the provider failed the whole delivery
    """
    transport = registry.get(provider)

    unreachable = [
        RecipientFailure(clerk_user_id=recipient.clerk_user_id, error=NO_EMAIL_ON_FILE)
        for recipient in recipients
        if not recipient.email
    ]
    reachable = [recipient for recipient in recipients if recipient.email]

    if not reachable:
        return DeliveryResult(failed=unreachable)

    result = await transport.deliver(subject, body, reachable)
    return DeliveryResult(sent=list(result.sent), failed=unreachable + list(result.failed))
