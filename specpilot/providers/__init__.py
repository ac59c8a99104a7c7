"""Agent providers.

Key Components:
    - AgentProvider: Abstract "invoke the agent" capability
    - ExternalAgentProvider: Runs an agent CLI as a subprocess
"""

from specpilot.providers.base import AgentProvider, InvocationResult
from specpilot.providers.external_agent import ExternalAgentProvider

__all__ = ["AgentProvider", "ExternalAgentProvider", "InvocationResult"]
