"""WebSocket endpoint streaming confirmation depth for a transaction."""

import asyncio
import logging
import re
from typing import Annotated

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect, status

from rwa_deployer.infrastructure.blockchain.client import ChainClient, get_chain_client
from rwa_deployer.services.deployment import ConfirmationMonitor, ConfirmationStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])

TX_HASH_PATTERN = re.compile(r"^0x[a-fA-F0-9]{64}$")


@router.websocket("/confirmations/{tx_hash}")
async def stream_confirmations(
    websocket: WebSocket,
    tx_hash: str,
    client: Annotated[ChainClient, Depends(get_chain_client)],
    target_depth: int | None = None,
):
    """Stream confirmation updates until the target depth.

    Protocol:
    1. Client connects to /ws/confirmations/{tx_hash}?target_depth=N
    2. Server sends each status as {"state", "depth", "tx_hash"}
    3. Server sends {"state": "done", "confirmed": bool} and closes

    Monitoring stops as soon as the client disconnects.
    """
    await websocket.accept()

    if not TX_HASH_PATTERN.fullmatch(tx_hash):
        await websocket.send_json({"state": "error", "error": "Invalid transaction hash"})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if target_depth is not None and target_depth < 1:
        await websocket.send_json({"state": "error", "error": "target_depth must be at least 1"})
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    updates: asyncio.Queue[ConfirmationStatus] = asyncio.Queue()
    handle = ConfirmationMonitor(client).start(tx_hash, updates.put_nowait, target_depth)
    client_gone = asyncio.ensure_future(_wait_for_disconnect(websocket))

    try:
        while True:
            next_update = asyncio.ensure_future(updates.get())
            done, _ = await asyncio.wait(
                {next_update, handle.task, client_gone},
                return_when=asyncio.FIRST_COMPLETED,
            )
            if client_gone in done:
                next_update.cancel()
                logger.info(f"Confirmation stream for {tx_hash} closed by client")
                return
            if next_update in done:
                await websocket.send_json(next_update.result().model_dump(mode="json"))
                continue

            next_update.cancel()
            while not updates.empty():
                await websocket.send_json(updates.get_nowait().model_dump(mode="json"))
            confirmed = await handle.wait()
            await websocket.send_json({"state": "done", "confirmed": confirmed})
            break

        client_gone.cancel()
        await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"Confirmation stream for {tx_hash} closed by client")
    except Exception as e:
        logger.error(f"Confirmation stream error for {tx_hash}: {e}")
    finally:
        handle.cancel()
        client_gone.cancel()


async def _wait_for_disconnect(websocket: WebSocket) -> None:
    """Return once the client closes the connection; other messages are ignored."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            return
