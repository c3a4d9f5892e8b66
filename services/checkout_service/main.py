from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability import setup_observability
from shared.security import limiter

from .router import public_router, router


def create_checkout_app(container) -> FastAPI:
    checkout_app = FastAPI(title="Checkout Service", version="2.0.0")
    checkout_app.state.container = container
    checkout_app.state.settings = container.settings
    checkout_app.state.limiter = limiter

    register_exception_handlers(checkout_app)
    setup_observability(checkout_app, container.settings)

    checkout_app.include_router(public_router)
    checkout_app.include_router(router)
    return checkout_app
