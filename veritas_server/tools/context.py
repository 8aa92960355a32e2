"""
Tools - Context

The pipeline instance shared by all MCP tools in a server process.
"""

from typing import Optional

from veritas_server.services.validation_pipeline import GroundedAnswerPipeline, build_pipeline

_pipeline: Optional[GroundedAnswerPipeline] = None


def get_pipeline() -> GroundedAnswerPipeline:
    """Build the pipeline on first use."""
    global _pipeline
    if _pipeline is None:
        _pipeline = build_pipeline()
    return _pipeline


def set_pipeline(pipeline: Optional[GroundedAnswerPipeline]) -> None:
    """Install a pipeline (or None to rebuild on next use)."""
    global _pipeline
    _pipeline = pipeline
