"""
SocketClient: one NUL-framed request/response exchange per TCP connection.

Exchange: write ``login\\0command\\0``, read and discard the greeting frame, read
the login acknowledgement, read the command response, close.
"""

import asyncio
import logging
import xml.etree.ElementTree as ET

from provisioning.core.exceptions import ProviderApiError, ProviderConnectionError, UnknownResponseError
from provisioning.core.utils import limit_text
from provisioning.infra.virtuozzo.xml_command import iter_local

logger = logging.getLogger(__name__)

FRAME_DELIMITER = b"\0"
STREAM_LIMIT = 16 * 1024 * 1024


def parse_xml(frame: str, body_limit: int) -> ET.Element:
    try:
        return ET.fromstring(frame)
    except ET.ParseError as e:
        raise UnknownResponseError(
            "Can't parse response",
            debug={"response_body": limit_text(frame, body_limit), "exception": str(e)},
        ) from e


def check_auth(frame: str, body_limit: int) -> None:
    """Raise when the login acknowledgement carries ``System errors`` messages."""
    root = parse_xml(frame, body_limit)
    errors = [m.text for m in iter_local(root, "message") if m.text and "System errors" in m.text]
    if errors:
        raise ProviderApiError(
            f"Provider API Error: {', '.join(errors)}",
            debug={"response_body": limit_text(frame, body_limit)},
        )


class SocketClient:
    def __init__(
        self,
        host: str,
        port: int,
        *,
        connect_timeout: float,
        timeout: float,
        body_limit: int,
        debug: bool = False,
    ) -> None:
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.timeout = timeout
        self.body_limit = body_limit
        self.debug = debug

    async def request(self, login: str, command: str) -> str:
        """Run one authenticated exchange and return the raw command response."""
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port, limit=STREAM_LIMIT), timeout=self.connect_timeout
            )
        except (OSError, asyncio.TimeoutError) as e:
            raise ProviderConnectionError(
                f"Can't connect to socket: {e}",
                data={"exception": type(e).__name__, "connection_error": str(e)},
            ) from e

        try:
            return await asyncio.wait_for(self._exchange(reader, writer, login, command), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            raise ProviderConnectionError("Provider API socket timed out", data={"timeout": self.timeout}) from e
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                logger.debug("Socket close failed", extra={"host": self.host})

    async def _exchange(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter, login: str, command: str
    ) -> str:
        if self.debug:
            logger.debug("Virtuozzo request", extra={"host": self.host, "command": command})

        try:
            writer.write(login.encode() + FRAME_DELIMITER + command.encode() + FRAME_DELIMITER)
            await writer.drain()

            await self._read_frame(reader)  # greeting
            check_auth(await self._read_frame(reader), self.body_limit)
            response = await self._read_frame(reader)
        except (OSError, asyncio.IncompleteReadError, asyncio.LimitOverrunError) as e:
            raise ProviderConnectionError(
                "Error occurred on the provider API socket",
                data={"exception": type(e).__name__, "connection_error": str(e)},
            ) from e

        if self.debug:
            logger.debug(
                "Virtuozzo response",
                extra={"host": self.host, "body": limit_text(response, self.body_limit)},
            )
        return response

    @staticmethod
    async def _read_frame(reader: asyncio.StreamReader) -> str:
        frame = await reader.readuntil(FRAME_DELIMITER)
        return frame[:-1].decode()
