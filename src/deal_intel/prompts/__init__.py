"""
LLM prompts for the Deal Intel pipeline.

Provides the system / user prompts and the forced tool definition for deal
prioritization.
"""

from .prioritize_deals import (
    DEAL_PRIORITIZATION_SYSTEM_PROMPT,
    TOOL_NAME,
    build_prioritization_prompt,
    build_priority_tool,
)

__all__ = [
    'DEAL_PRIORITIZATION_SYSTEM_PROMPT',
    'TOOL_NAME',
    'build_prioritization_prompt',
    'build_priority_tool',
]
