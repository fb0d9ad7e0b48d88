import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_int(value: str | None, default: int) -> int:
    if value is None or not value.strip():
        return default
    return int(value)


APP_ENV = os.getenv("APP_ENV", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./pawnder.db")

CORS_ALLOWED_ORIGINS = [
    origin.strip()
    for origin in os.getenv("CORS_ALLOWED_ORIGINS", "http://localhost:8081").split(",")
    if origin.strip()
]

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = _get_int(os.getenv("JWT_EXPIRES_MINUTES"), 60)

# Appointment times are stored as naive wall-clock values in this zone.
APPOINTMENT_TIMEZONE = os.getenv("APPOINTMENT_TIMEZONE", "Asia/Ho_Chi_Minh")

EXPIRATION_SWEEP_ENABLED = _get_bool(os.getenv("EXPIRATION_SWEEP_ENABLED"), default=True)
EXPIRATION_SWEEP_INTERVAL_SECONDS = _get_int(os.getenv("EXPIRATION_SWEEP_INTERVAL_SECONDS"), 300)
EXPIRATION_SWEEP_BATCH_SIZE = _get_int(os.getenv("EXPIRATION_SWEEP_BATCH_SIZE"), 200)


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")
    if EXPIRATION_SWEEP_INTERVAL_SECONDS <= 0:
        raise RuntimeError("EXPIRATION_SWEEP_INTERVAL_SECONDS must be positive.")
    if EXPIRATION_SWEEP_BATCH_SIZE <= 0:
        raise RuntimeError("EXPIRATION_SWEEP_BATCH_SIZE must be positive.")
