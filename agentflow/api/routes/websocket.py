"""
WebSocket Routes for Real-time Execution Streaming.

Provides live lifecycle events for a workflow's runs.
"""

from fastapi import APIRouter, WebSocket, WebSocketDisconnect
import asyncio
import contextlib
import logging

from agentflow.engine.events import Subscription


logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


async def _pump(websocket: WebSocket, subscription: Subscription) -> None:
    """Forward queued events to the socket until the subscription closes."""
    async for payload in subscription:
        await websocket.send_text(payload)


@router.websocket("/workflows/{workflow_id}/ws")
async def workflow_events(websocket: WebSocket, workflow_id: str):
    """
    Stream lifecycle events of a workflow's runs.

    On connect, the client receives a ``state`` event with the current or
    most recent run (if any), then every event as it is emitted:

    ```json
    {"type": "node_started", "data": {"nodeId": "llm"}}
    {"type": "node_completed", "data": {"nodeId": "llm", "result": {...}}}
    ```

    Messages sent by the client are ignored.
    """
    supervisor = websocket.app.state.supervisor

    subscription = supervisor.subscribe(workflow_id)
    pump = None

    try:
        await websocket.accept()
        pump = asyncio.create_task(_pump(websocket, subscription))
        while True:
            receive = asyncio.create_task(websocket.receive_text())
            done, _ = await asyncio.wait(
                {receive, pump}, return_when=asyncio.FIRST_COMPLETED
            )
            if pump in done:
                receive.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await receive
                pump.result()
                await websocket.close()
                break
            receive.result()
    except WebSocketDisconnect:
        logger.info(f"Observer disconnected from workflow {workflow_id}")
    except Exception as e:
        logger.warning(f"WebSocket stream for workflow {workflow_id} ended: {e}")
    finally:
        supervisor.unsubscribe(workflow_id, subscription)
        if pump is not None and not pump.done():
            pump.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await pump
