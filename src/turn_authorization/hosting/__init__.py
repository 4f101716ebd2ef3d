"""Sample FastAPI host for the authorization engine."""
