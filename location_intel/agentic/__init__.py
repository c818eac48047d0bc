"""Agentic components: the LLM client and the competitor classification agent."""
