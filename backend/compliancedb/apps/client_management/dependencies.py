"""
FastAPI dependencies for routes that act on a client's records.

`require_approved_client` short-circuits manager requests that do not
name an approved client before they reach any domain service.
"""

from __future__ import annotations

import json
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session

from compliancedb.apps.accounts import models as account_models
from compliancedb.database import get_db
from compliancedb.security import get_current_active_user

from . import errors, ownership

STANDALONE_ID_KEYS = ("standalone_id", "stand_alone_id")


def _first(mapping, keys=STANDALONE_ID_KEYS) -> Optional[str]:
    for key in keys:
        value = mapping.get(key)
        if value:
            return str(value)
    return None


async def get_standalone_id(request: Request) -> Optional[str]:
    """Target standalone id from the path, the query string or a JSON body."""
    value = _first(request.path_params) or _first(request.query_params)
    if value:
        return value

    content_type = request.headers.get("content-type", "")
    if request.method in ("POST", "PUT", "PATCH") and "application/json" in content_type:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            return None
        if isinstance(body, dict):
            return _first(body)
    return None


def resolve_requester(
    standalone_id: Optional[str] = Depends(get_standalone_id),
    current_user: account_models.Account = Depends(get_current_active_user),
) -> ownership.Requester:
    try:
        return ownership.requester_for(current_user, standalone_id)
    except errors.ClientManagementError as exc:
        raise errors.to_http_exception(exc)


def require_approved_client(
    requester: ownership.Requester = Depends(resolve_requester),
    db: Session = Depends(get_db),
) -> ownership.Requester:
    if isinstance(requester, ownership.StandaloneRequester):
        return requester

    if not requester.target_standalone_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="standalone_id is required",
        )
    if not ownership.is_approved_client(db, requester.account_id, requester.target_standalone_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Client is not approved for this Transport Manager",
        )
    return requester
