"""Transfer workflow router aggregation."""
from app.routers import transfers, vehicles

ROUTERS = [transfers.router, vehicles.router]
