from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability import setup_observability

from .router import public_router, router


def create_payment_app(container) -> FastAPI:
    payment_app = FastAPI(title="Payment Service", version="2.0.0")
    payment_app.state.container = container
    payment_app.state.settings = container.settings

    register_exception_handlers(payment_app)
    setup_observability(payment_app, container.settings)

    payment_app.include_router(public_router)
    payment_app.include_router(router)
    return payment_app
