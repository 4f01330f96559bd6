"""
BotFarm - IPC Layer

Local HTTP interface to the process lifecycle.

Structure:
- routes/  : Endpoint handlers
- schemas/ : Pydantic request/response models
- server.py: Uvicorn host used as the IPC listener
"""

from api.main import create_app
from api.server import IPCServer

__all__ = ["create_app", "IPCServer"]
