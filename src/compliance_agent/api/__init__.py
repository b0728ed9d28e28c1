"""API layer for Compliance Agent."""
