"""Persistence for in-flight sign-in sessions."""
