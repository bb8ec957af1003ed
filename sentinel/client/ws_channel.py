from __future__ import annotations

from websockets.asyncio.client import connect

from sentinel.core.connection import ChannelConnection, Dialer


def websocket_dialer(url: str, *, open_timeout_s: float = 10.0, ping_interval_s: float | None = 20.0) -> Dialer:
    """
    Dialer for the backend's run channel (ws:// or wss://).

    The returned connection already satisfies ChannelConnection: `send`, `recv` (raises
    ConnectionClosed once the peer goes away) and `close`.
    """

    async def dial() -> ChannelConnection:
        return await connect(url, open_timeout=open_timeout_s, ping_interval=ping_interval_s)

    return dial
