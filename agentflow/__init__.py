"""
AgentFlow - Workflow execution engine.

Runs graphs of typed nodes (LLM calls, HTTP calls, transforms, conditions)
against an input payload and streams lifecycle events to live observers.
"""

__version__ = "1.0.0"
