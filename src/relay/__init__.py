"""Relay: agent event stream to ACP session update bridge.

Relay sits between an editor speaking the Agent Client Protocol and an
autonomous coding agent, turning the agent's partial, interleaved output
into ordered, well-typed session updates.
"""

__version__ = "0.1.0"
