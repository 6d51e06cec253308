"""
Agents module - Facilitator prompt definitions
"""

from .facilitator_agent import (
    RESPONSE_GUIDANCE,
    FacilitatorAgentConfig,
    generate_facilitator_prompt,
)

__all__ = [
    "RESPONSE_GUIDANCE",
    "FacilitatorAgentConfig",
    "generate_facilitator_prompt",
]
