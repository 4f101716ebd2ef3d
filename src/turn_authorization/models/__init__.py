"""Data models for the authorization engine."""
