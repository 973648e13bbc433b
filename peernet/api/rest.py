"""
REST API for a peernet Node

Design Decision: API Framework
==============================

Decision: FastAPI
- Native async support, runs on the node's own event loop
- Pydantic models double as response schemas
- Automatic OpenAPI documentation at /docs

The API is read-mostly: membership and chat history, plus toggles for
the announcer.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from ..errors import TransportError
from ..node import ChatPacket

logger = logging.getLogger(__name__)


# === Pydantic Models ===

class NodeStatus(BaseModel):
    """Node status response."""
    identity: Optional[str]
    running: bool
    announcing: bool
    peers: int
    updates: int
    errors: dict


class MembershipInfo(BaseModel):
    """Latest membership update seen by the node."""
    peers: List[str]
    new: Optional[str] = None
    lost: List[str] = []


class MessageRequest(BaseModel):
    """Request to broadcast a chat message."""
    msg: str


# === API Creation ===

def create_app(node=None) -> FastAPI:
    """
    Create the FastAPI application.

    Args:
        node: PeerNode instance to expose

    Returns:
        FastAPI application
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("API server starting...")
        yield
        logger.info("API server stopping...")

    app = FastAPI(
        title="peernet API",
        description="Membership and broadcast chat of a peernet node",
        version="1.0.0",
        lifespan=lifespan,
    )

    def require_node():
        if node is None:
            raise HTTPException(status_code=503, detail="Node not initialized")
        return node

    @app.get("/", tags=["General"])
    async def root():
        """API root - basic info."""
        return {
            "name": "peernet",
            "version": "1.0.0",
            "status": "running" if node and node.is_running else "not running",
        }

    @app.get("/status", response_model=NodeStatus, tags=["Node"])
    async def get_status():
        """Get node status."""
        stats = require_node().get_stats()
        return NodeStatus(
            identity=stats['identity'],
            running=stats['running'],
            announcing=stats['announcing'],
            peers=stats['peers'],
            updates=stats['updates'],
            errors=stats['errors'],
        )

    @app.get("/peers", response_model=MembershipInfo, tags=["Peers"])
    async def get_peers():
        """Get the latest membership update."""
        return MembershipInfo(**require_node().get_membership().to_dict())

    @app.post("/announce/enable", tags=["Peers"])
    async def enable_announce():
        """Resume broadcasting our heartbeat."""
        require_node().enable_announce()
        return {"announcing": True}

    @app.post("/announce/disable", tags=["Peers"])
    async def disable_announce():
        """Stop broadcasting our heartbeat; other nodes will report us lost."""
        require_node().disable_announce()
        return {"announcing": False}

    @app.get("/messages", response_model=List[ChatPacket], tags=["Chat"])
    async def list_messages():
        """List recently received chat packets."""
        return require_node().recent_messages()

    @app.post("/messages", response_model=ChatPacket, tags=["Chat"])
    async def send_message(request: MessageRequest):
        """Broadcast a chat message."""
        current = require_node()
        if not current.is_running:
            raise HTTPException(status_code=409, detail="Node is not running")
        try:
            return await current.send_message(request.msg)
        except TransportError as e:
            raise HTTPException(status_code=413, detail=str(e))

    return app


async def run_api_server(node, host: str = "0.0.0.0", port: int = 8080):
    """
    Run the API server.

    Args:
        node: PeerNode instance
        host: Host to bind to
        port: Port to listen on
    """
    import uvicorn

    app = create_app(node)

    config = uvicorn.Config(
        app,
        host=host,
        port=port,
        log_level="info",
    )
    server = uvicorn.Server(config)
    await server.serve()
