from fastapi import FastAPI

from shared.errors import register_exception_handlers
from shared.observability import setup_observability

from .router import public_router, router


def create_admin_app(container) -> FastAPI:
    admin_app = FastAPI(title="Admin Service", version="2.0.0")
    admin_app.state.container = container
    admin_app.state.settings = container.settings

    register_exception_handlers(admin_app)
    setup_observability(admin_app, container.settings)

    admin_app.include_router(public_router)
    admin_app.include_router(router)
    return admin_app
