"""LangGraph state and workflow for the deploy pipe."""
