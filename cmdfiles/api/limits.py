"""
Request Body Limit

Content-Length is only a claim, and chunked requests carry none. This
middleware counts body bytes as the application reads them and fails the
read once the limit is crossed, so an oversized upload is rejected before
the form parser spools it to disk.
"""

import logging

from starlette.types import ASGIApp, Message, Receive, Scope, Send

from ..errors import StoreError
from ..transfer.protocol import FILE_TOO_BIG

logger = logging.getLogger(__name__)


class RequestSizeLimit:
    """ASGI middleware capping the bytes read from any one request body."""

    def __init__(self, app: ASGIApp, max_size: int):
        self.app = app
        self.max_size = max_size

    async def __call__(self, scope: Scope, receive: Receive, send: Send):
        if scope['type'] != 'http':
            await self.app(scope, receive, send)
            return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message['type'] == 'http.request':
                received += len(message.get('body', b''))
                if received > self.max_size:
                    logger.warning(f"Request body to {scope['path']} passed "
                                   f"{self.max_size:,} bytes, stopped reading")
                    raise StoreError(FILE_TOO_BIG)
            return message

        await self.app(scope, limited_receive, send)
