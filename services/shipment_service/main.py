from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability import setup_observability

from .router import internal_router, public_router, router


def create_shipment_app(container) -> FastAPI:
    shipment_app = FastAPI(title="Shipment Service", version="2.0.0")
    shipment_app.state.container = container
    shipment_app.state.settings = container.settings

    register_exception_handlers(shipment_app)
    setup_observability(shipment_app, container.settings)

    shipment_app.include_router(public_router)
    shipment_app.include_router(internal_router)
    shipment_app.include_router(router)
    return shipment_app
