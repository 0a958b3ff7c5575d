"""AgentDeck MCP: interactive agent sessions bound to git worktrees."""

__version__ = "0.1.0"

__all__ = ["__version__"]
