"""
API package - FastAPI routes and schemas.
"""

from agentflow.api.routes import workflows, websocket

__all__ = ["workflows", "websocket"]
