#!/usr/bin/env python3
"""
Simple run script for AgentFlow.

Usage:
    python run.py

Or with custom settings:
    HOST=127.0.0.1 PORT=8080 python run.py
"""

import uvicorn
import os


def main():
    """Run the FastAPI application."""
    host = os.getenv("HOST", "0.0.0.0")
    port = int(os.getenv("PORT", "8787"))
    reload = os.getenv("RELOAD", "true").lower() == "true"

    print(f"""
AgentFlow workflow execution engine
  Server:    http://{host}:{port}
  API Docs:  http://{host}:{port}/docs
  Events:    ws://{host}:{port}/workflows/<workflow_id>/ws
    """)

    uvicorn.run(
        "agentflow.main:app",
        host=host,
        port=port,
        reload=reload,
        log_level="info",
    )


if __name__ == "__main__":
    main()
