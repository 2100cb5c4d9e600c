"""FastAPI application and its dependencies."""
