"""
Sales assistant package.

Keep imports lightweight so modules like `src.sales_assistant.normalizer` can be
used without pulling in the LLM and HTTP clients at import time.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from src.sales_assistant.config import Config
    from src.sales_assistant.pipeline import PipelineRequest, ResponsePipeline

__all__ = ["Config", "get_config", "PipelineRequest", "ResponsePipeline", "create_pipeline"]


def __getattr__(name: str) -> Any:
    if name in ("Config", "get_config"):
        from src.sales_assistant import config

        return getattr(config, name)
    if name in ("PipelineRequest", "ResponsePipeline", "create_pipeline"):
        from src.sales_assistant import pipeline

        return getattr(pipeline, name)
    raise AttributeError(name)
