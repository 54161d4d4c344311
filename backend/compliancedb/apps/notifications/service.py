from __future__ import annotations

from datetime import datetime, timezone
import logging
from typing import Optional

from sqlalchemy.orm import Session

from compliancedb.database import WriteSessionLocal

from . import models, providers

logger = logging.getLogger(__name__)

# Passed through to the provider, masked in the stored log row.
SENSITIVE_CONTEXT_KEYS = frozenset({"password", "temporary_password"})
REDACTED = "***"


def _redact(context: dict) -> dict:
    return {key: REDACTED if key in SENSITIVE_CONTEXT_KEYS else value for key, value in context.items()}


def _deliver(log: models.EmailLog, context: dict) -> None:
    """Hand the message to the configured provider and record the outcome on `log`."""
    provider, configured = providers.get_email_provider()
    if not configured:
        log.status = models.EmailStatus.SKIPPED_NO_PROVIDER
        log.error = "No provider configured"
        return

    try:
        provider.send(
            template_key=log.template_key,
            recipient=log.recipient,
            subject=log.subject,
            context=context,
            correlation_id=log.correlation_id,
        )
    except Exception as exc:
        log.status = models.EmailStatus.FAILED
        log.error = str(exc)
        logger.warning(
            "Email provider rejected message",
            extra={"template_key": log.template_key, "email_log_id": log.id},
        )
        raise
    log.status = models.EmailStatus.SENT
    log.sent_at = datetime.now(timezone.utc)


def send_email(
    template_key: str,
    recipient: str,
    subject: str,
    context: dict,
    correlation_id: Optional[str],
    critical: bool = False,
    *,
    account_id: Optional[str] = None,
    db: Optional[Session] = None,
) -> models.EmailLog:
    """
    Send a templated email and keep an `EmailLog` row for it.

    With a caller-supplied session the row is flushed and left for the caller
    to commit; otherwise a private session is opened and committed here.
    Provider failures mark the row FAILED and only propagate when `critical`.
    """
    context = context or {}
    owns_session = db is None
    session = db if db is not None else WriteSessionLocal()

    log = models.EmailLog(
        account_id=account_id,
        recipient=recipient,
        subject=subject,
        template_key=template_key,
        status=models.EmailStatus.QUEUED,
        context_json=_redact(context),
        correlation_id=correlation_id,
    )
    session.add(log)
    session.flush()

    failure: Optional[Exception] = None
    try:
        _deliver(log, context)
    except Exception as exc:
        failure = exc

    try:
        if owns_session:
            session.commit()
    finally:
        if owns_session:
            session.close()

    if failure is not None and critical:
        raise failure
    return log
