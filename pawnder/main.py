import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy.exc import SQLAlchemyError

from pawnder.core import config
from pawnder.core.logging import setup_logging
from pawnder.database import Base, SessionLocal, engine, ensure_appointment_schema
from pawnder.models import appointment, notification  # noqa: F401
from pawnder.routes import appointment_routes, location_routes
from pawnder.services.expiration import ExpirationSweeper
from pawnder.services.notifications import DatabaseNotifier

setup_logging()
config.validate_runtime_config()

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)

app.state.expiration_sweeper = ExpirationSweeper(
    session_factory=SessionLocal,
    notifier=DatabaseNotifier(SessionLocal),
    interval_seconds=config.EXPIRATION_SWEEP_INTERVAL_SECONDS,
    batch_size=config.EXPIRATION_SWEEP_BATCH_SIZE,
)


@app.on_event('startup')
async def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.on_event('startup')
async def start_expiration_sweeper() -> None:
    if config.EXPIRATION_SWEEP_ENABLED:
        await app.state.expiration_sweeper.start()


@app.on_event('shutdown')
async def stop_expiration_sweeper() -> None:
    if app.state.expiration_sweeper.is_running:
        await app.state.expiration_sweeper.stop()


@app.get('/')
def root():
    return {'status': 'Pawnder Appointment API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(location_routes.router, prefix='/locations')
