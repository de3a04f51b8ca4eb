"""FastAPI integration for opaca (requires ``opaca[fastapi]``)."""

from .router import create_crud_router

__all__: list[str] = [
    "create_crud_router",
]
