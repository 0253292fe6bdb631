"""Central router registry for module-oriented composition."""
from __future__ import annotations

from fastapi import FastAPI

from app.modules.notifications.router import ROUTERS as NOTIFICATION_ROUTERS
from app.modules.transfers.router import ROUTERS as TRANSFER_ROUTERS

ALL_ROUTERS = TRANSFER_ROUTERS + NOTIFICATION_ROUTERS


def include_all_routers(app: FastAPI) -> None:
    for router in ALL_ROUTERS:
        app.include_router(router)
