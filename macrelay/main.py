"""Main FastAPI application with WebSocket endpoints."""

import json
import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from sse_starlette.sse import EventSourceResponse

from macrelay import __version__
from macrelay.config import RelayConfig
from macrelay.core.activity import ActivityLog
from macrelay.core.assistant import ExamAssistant
from macrelay.core.command_queue import CommandQueue
from macrelay.core.dispatcher import RelayContext
from macrelay.core.exceptions import ProtocolError
from macrelay.core.websocket_manager import WebSocketManager

logger = logging.getLogger(__name__)


def create_app(config: Optional[RelayConfig] = None,
               assistant: Optional[ExamAssistant] = None) -> FastAPI:
    """
    Build the relay application.

    Args:
        config: Settings to use; read from the environment when omitted
        assistant: Collaborator answering exam-assistant requests
    """
    config = config or RelayConfig.from_env()
    logging.basicConfig(level=config.log_level.upper())

    activity = ActivityLog(history=config.activity_history)
    context = RelayContext(queue=CommandQueue(interval=config.drain_interval))
    websocket_manager = WebSocketManager(
        context, device_tag=config.device_tag, assistant=assistant, activity=activity
    )
    dispatcher = websocket_manager.dispatcher

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Relay ready, waiting for the device ({config.device_tag!r}) and viewers")
        yield
        await websocket_manager.close()

    app = FastAPI(title="Mac Relay", version=__version__, lifespan=lifespan)
    app.state.config = config
    app.state.websocket_manager = websocket_manager

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/")
    async def root():
        """Root endpoint returning API information."""
        return {
            "message": "Mac Relay",
            "version": __version__,
            "endpoints": {
                "websocket": "/ws/{connection_id}",
                "state": "/state",
                "events": "/events",
                "health": "/health"
            }
        }

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {
            "status": "healthy",
            "device_connected": dispatcher.sessions.is_device_bound(),
            "viewers": len(dispatcher.sessions.viewer_ids()),
            "queued_commands": dispatcher.queue.length()
        }

    @app.get("/state")
    async def get_state():
        """Get current channel values, sessions and queued commands."""
        return {
            "channels": dispatcher.registry.to_dict(),
            "device": dispatcher.sessions.current_device_id(),
            "viewers": dispatcher.sessions.viewer_ids(),
            "queue": [command.to_dict() for command in dispatcher.queue.pending()],
            "draining": dispatcher.queue.is_draining
        }

    @app.get("/events")
    async def events():
        """Stream relay activity as server-sent events."""
        async def event_generator():
            async for entry in activity.follow():
                yield {"event": entry["type"], "data": json.dumps(entry)}

        return EventSourceResponse(event_generator())

    @app.websocket("/ws/{client_id}")
    async def websocket_endpoint(websocket: WebSocket, client_id: str):
        """
        WebSocket endpoint for the device and viewers.

        Args:
            websocket: WebSocket connection
            client_id: Unique identifier for the connection
        """
        try:
            await websocket_manager.connect(websocket, client_id)

            while True:
                message = await websocket.receive_text()
                await websocket_manager.handle_message(client_id, message)

        except WebSocketDisconnect:
            logger.info(f"Client {client_id} disconnected")
        except ProtocolError as e:
            logger.warning(f"Refused connection {client_id}: {str(e)}")
        except Exception as e:
            logger.error(f"WebSocket error for client {client_id}: {str(e)}")
        finally:
            await websocket_manager.disconnect(client_id, websocket)

    return app


app = create_app()
