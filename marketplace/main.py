import logging
from typing import Optional
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator
from sqlalchemy.orm import sessionmaker
from marketplace.version import VERSION
from marketplace.api import auth, orders, products, users
from marketplace.core.config import Settings, settings as default_settings
from marketplace.core.errors import install_handlers
from marketplace.core.logs import setup_logging
from marketplace.db.session import make_engine, make_session_factory

log = logging.getLogger(__name__)

def create_app(settings: Optional[Settings] = None, session_factory: Optional[sessionmaker] = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    app = FastAPI(title='Artisan Marketplace', version=VERSION)
    if session_factory is None:
        session_factory = make_session_factory(make_engine(settings.DATABASE_URL))
    app.state.session_factory = session_factory
    app.state.settings = settings

    # Instrument the app BEFORE adding routes or middleware
    if settings.METRICS_ENABLED:
        Instrumentator().instrument(app).expose(app, include_in_schema=False, endpoint='/metrics', should_gzip=True)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=['GET', 'POST', 'PATCH', 'DELETE', 'OPTIONS'],
        allow_headers=['Content-Type', 'Authorization'],
    )
    install_handlers(app)

    @app.get('/health')
    def health(): return {'status': 'ok'}

    @app.get('/v1/_info')
    def info(): return {'service': 'marketplace', 'version': VERSION}

    @app.on_event('startup')
    async def startup_event():
        for route in app.routes:
            if hasattr(route, 'methods') and hasattr(route, 'path'):
                log.debug('%s %s', sorted(route.methods), route.path)

    app.include_router(auth.router, prefix='/auth', tags=['auth'])
    app.include_router(products.router, prefix='/catalog/v1/products', tags=['products'])
    app.include_router(orders.router, prefix='/order', tags=['orders'])
    app.include_router(users.router, prefix='/users', tags=['users'])
    return app
