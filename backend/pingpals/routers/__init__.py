"""API routers."""
from .master import router as master_router
from .slave import router as slave_router

__all__ = ["master_router", "slave_router"]
