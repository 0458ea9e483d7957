"""
AgentFlow - FastAPI Application Entry Point.

Runs workflow graphs and streams their lifecycle events over WebSocket.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging

import httpx

from agentflow.config import settings
from agentflow.api.routes import workflows, websocket
from agentflow.backends.inference import WorkersAIBackend
from agentflow.engine.executor import ExecutorOptions
from agentflow.engine.handlers import HandlerContext, list_handlers
from agentflow.engine.supervisor import WorkflowSupervisor
from agentflow.storage import create_execution_log


# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup
    logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")

    execution_log = create_execution_log(settings.EXECUTION_DB_PATH)
    http_client = httpx.AsyncClient(timeout=settings.HTTP_TIMEOUT_SECONDS)
    context = HandlerContext(
        inference=WorkersAIBackend(
            http_client,
            account_id=settings.CLOUDFLARE_ACCOUNT_ID,
            api_token=settings.CLOUDFLARE_API_TOKEN,
            base_url=settings.WORKERS_AI_BASE_URL,
        ),
        http_client=http_client,
    )
    app.state.supervisor = WorkflowSupervisor(
        execution_log,
        context,
        ExecutorOptions.from_settings(),
        max_pending_events=settings.SUBSCRIBER_QUEUE_SIZE,
    )

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.supervisor.shutdown()
    await http_client.aclose()
    await execution_log.close()


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    description="""
## AgentFlow Execution API

Runs workflow graphs built in the AgentFlow editor.

### Node types
- **start / end**: pass the payload through
- **llm**: prompt an inference model, with `{{path}}` placeholders
- **http**: call an HTTP endpoint
- **transform**: parse JSON, extract fields or merge data
- **condition**: pick a value from a boolean predicate

### Quick Start
1. Run a workflow: `POST /workflows/{workflow_id}/execute`
2. Watch it live: `WS /workflows/{workflow_id}/ws`
3. Poll its state: `GET /workflows/{workflow_id}/status`
    """,
    version=settings.APP_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)


# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


# Include routers
app.include_router(workflows.router)
app.include_router(websocket.router)


# ============================================================
# Root Endpoints
# ============================================================

@app.get("/", tags=["Root"])
async def root():
    """API root - returns basic info and links."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "description": "Workflow execution engine",
        "docs": "/docs",
        "redoc": "/redoc",
        "node_types": list_handlers(),
        "endpoints": {
            "execute": "/workflows/{workflow_id}/execute",
            "status": "/workflows/{workflow_id}/status",
            "cancel": "/workflows/{workflow_id}/cancel",
            "executions": "/workflows/{workflow_id}/executions",
            "websocket": "/workflows/{workflow_id}/ws",
        },
    }


@app.get("/health", tags=["Root"])
async def health():
    """Health check endpoint."""
    supervisor = getattr(app.state, "supervisor", None)

    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "workflows_count": len(supervisor) if supervisor is not None else 0,
    }


# ============================================================
# Error Handlers
# ============================================================

@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.exception(f"Unhandled error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal Server Error",
            "detail": str(exc) if settings.DEBUG else "An unexpected error occurred",
        },
    )
