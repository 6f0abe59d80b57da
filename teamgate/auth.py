# -*- coding: utf-8 -*-
"""Location: ./teamgate/auth.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Requester identity.

Teamgate runs behind an authenticating proxy that signs users in against the
corporate directory and GitHub, then forwards the identity in trusted request
headers. The header names are configurable.
"""

# Standard
from typing import Optional

# Third-Party
from fastapi import HTTPException, Request, status
from pydantic import BaseModel

# First-Party
from teamgate.config import settings
from teamgate.services.logging_service import LoggingService

logging_service = LoggingService()
logger = logging_service.get_logger(__name__)


class Requester(BaseModel):
    """Authenticated requester as forwarded by the proxy.

    Attributes:
        account_id: GitHub account id
        login: GitHub login
        name: Display name from the directory
        upn: Directory user principal name
    """

    account_id: Optional[str] = None
    login: str
    name: Optional[str] = None
    upn: Optional[str] = None


async def get_current_requester(request: Request) -> Requester:
    """Read the requester identity from the trusted headers.

    Args:
        request: Incoming request

    Returns:
        Requester: The requester

    Raises:
        HTTPException: 401 when the proxy forwarded no GitHub login

    Examples:
        >>> import asyncio
        >>> from starlette.requests import Request
        >>> scope = {"type": "http", "headers": [(b"x-teamgate-login", b"octocat"), (b"x-teamgate-upn", b"octo@contoso.com")]}
        >>> requester = asyncio.run(get_current_requester(Request(scope)))
        >>> requester.login, requester.upn
        ('octocat', 'octo@contoso.com')
    """
    headers = request.headers
    login = headers.get(settings.identity_header_login)
    if not login:
        logger.warning("Request without a forwarded GitHub login")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")

    return Requester(
        account_id=headers.get(settings.identity_header_account_id),
        login=login,
        name=headers.get(settings.identity_header_name),
        upn=headers.get(settings.identity_header_upn),
    )
