from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability import setup_observability

from .router import public_router, router


def create_cart_app(container) -> FastAPI:
    cart_app = FastAPI(title="Cart Service", version="2.0.0")
    cart_app.state.container = container
    cart_app.state.settings = container.settings

    register_exception_handlers(cart_app)
    setup_observability(cart_app, container.settings)

    cart_app.include_router(public_router)
    cart_app.include_router(router)
    return cart_app
