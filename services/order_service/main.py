from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability import setup_observability

from .router import public_router, router


def create_order_app(container) -> FastAPI:
    order_app = FastAPI(title="Order Service", version="2.0.0")
    order_app.state.container = container
    order_app.state.settings = container.settings

    register_exception_handlers(order_app)
    setup_observability(order_app, container.settings)

    order_app.include_router(public_router)
    order_app.include_router(router)
    return order_app
