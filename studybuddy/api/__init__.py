"""FastAPI application and routers."""
