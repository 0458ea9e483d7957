"""
Backends package - External services the node handlers call.
"""

from agentflow.backends.inference import (
    InferenceBackend,
    InferenceError,
    InferenceResult,
    WorkersAIBackend,
)

__all__ = [
    "InferenceBackend",
    "InferenceError",
    "InferenceResult",
    "WorkersAIBackend",
]
