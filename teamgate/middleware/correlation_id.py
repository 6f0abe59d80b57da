# -*- coding: utf-8 -*-
"""Location: ./teamgate/middleware/correlation_id.py
Copyright 2025
SPDX-License-Identifier: Apache-2.0
Authors: Teamgate Contributors

Correlation ID Middleware.

Every request runs inside a correlation scope. The ID is reused from the
configured request header when the client sent a safe one, otherwise a new
one is created. It is echoed on the response so a requester whose join
request failed can quote it; the 502 answer carries the same value.
"""

# Standard
import logging
from typing import Callable

# Third-Party
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# First-Party
from teamgate.config import settings
from teamgate.utils.correlation_id import correlation_id_from_headers, correlation_scope, new_correlation_id

logger = logging.getLogger(__name__)


class CorrelationIDMiddleware(BaseHTTPMiddleware):
    """Run each request inside a correlation scope.

    Attributes:
        header_name (str): Request and response header (``correlation_id_header``)
        trust_client (bool): Reuse safe client IDs (``correlation_id_preserve``)
        echo (bool): Add the header to responses (``correlation_id_response_header``)
    """

    def __init__(self, app):
        """Read the correlation settings once.

        Args:
            app: The ASGI application
        """
        super().__init__(app)
        self.header_name = settings.correlation_id_header
        self.trust_client = settings.correlation_id_preserve
        self.echo = settings.correlation_id_response_header

    def _pick_id(self, request: Request) -> str:
        if self.trust_client:
            client_id = correlation_id_from_headers(request.headers, self.header_name)
            if client_id:
                return client_id
        correlation_id = new_correlation_id()
        logger.debug(f"{request.method} {request.url.path} assigned correlation ID {correlation_id}")
        return correlation_id

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Handle the request with its correlation ID bound.

        Args:
            request: Incoming request
            call_next: Downstream handler

        Returns:
            Response: The downstream response, with the ID header when echoing is on
        """
        with correlation_scope(self._pick_id(request)) as correlation_id:
            response = await call_next(request)
        if self.echo:
            response.headers[self.header_name] = correlation_id
        return response
