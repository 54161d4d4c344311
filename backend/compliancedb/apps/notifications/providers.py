from __future__ import annotations

import logging
import os
from typing import Dict, Optional, Tuple, Type

logger = logging.getLogger(__name__)

# Names that explicitly mean "send nothing".
DISABLED_NAMES = frozenset({"", "none", "noop", "disabled"})


class EmailProvider:
    """Delivery backend. Implementations raise on failure."""

    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: Optional[str],
    ) -> None:
        raise NotImplementedError


class NoopProvider(EmailProvider):
    def send(self, **kwargs) -> None:
        return None


class LoggingProvider(EmailProvider):
    """Writes the message envelope to the application log; for development."""

    def send(
        self,
        *,
        template_key: str,
        recipient: str,
        subject: str,
        context: dict,
        correlation_id: Optional[str],
    ) -> None:
        logger.info(
            "Email %s for %s",
            template_key,
            recipient,
            extra={"subject": subject, "correlation_id": correlation_id},
        )


PROVIDERS: Dict[str, Type[EmailProvider]] = {
    "log": LoggingProvider,
}


def get_email_provider() -> Tuple[EmailProvider, bool]:
    """
    Provider named by NOTIFICATIONS_EMAIL_PROVIDER (or EMAIL_PROVIDER),
    plus whether one is actually configured.
    """
    name = (os.getenv("NOTIFICATIONS_EMAIL_PROVIDER") or os.getenv("EMAIL_PROVIDER") or "").strip().lower()
    if name in DISABLED_NAMES:
        return NoopProvider(), False
    try:
        provider_cls = PROVIDERS[name]
    except KeyError:
        raise ValueError(f"Unsupported email provider: {name}") from None
    return provider_cls(), True
