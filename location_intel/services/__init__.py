"""Orchestration: location analysis, concept viability and quality scoring."""
