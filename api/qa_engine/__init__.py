"""Reputation and answer-quality engine for a Q&A community."""
