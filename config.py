import logging
import os
from dotenv import load_dotenv

# Load .env file
load_dotenv()

_MISSING = object()


def get_env_var(name, default=_MISSING):
    value = os.getenv(name)
    if not value:
        if default is _MISSING:
            raise RuntimeError(f"{name} is not set in the environment")
        return default
    return value


def get_bool(name, default="false"):
    return get_env_var(name, default).lower() == "true"


# === Application Settings ===
DATABASE_URL = get_env_var("DATABASE_URL", "sqlite:///car_rental.db")
SECRET_KEY = get_env_var("SECRET_KEY", "change-me")
PORT = int(get_env_var("PORT", "5000"))
DEBUG_MODE = get_bool("DEBUG_MODE")

# === Mail Gateway ===
MAIL_SERVER = get_env_var("MAIL_SERVER", "localhost")
MAIL_PORT = int(get_env_var("MAIL_PORT", "25"))
MAIL_USE_TLS = get_bool("MAIL_USE_TLS")
MAIL_USERNAME = get_env_var("MAIL_USERNAME", None)
MAIL_PASSWORD = get_env_var("MAIL_PASSWORD", None)
MAIL_DEFAULT_SENDER = get_env_var("MAIL_DEFAULT_SENDER", "noreply@car-rental.local")
MAIL_SENDER_NAME = get_env_var("MAIL_SENDER_NAME", "Car Rental")
MAIL_SUPPRESS_SEND = get_bool("MAIL_SUPPRESS_SEND")

# === Billing Workflow ===
REMINDER_OVERDUE_DAYS = int(get_env_var("REMINDER_OVERDUE_DAYS", "3"))


# === Logging Configuration ===
def setup_logging():
    """Configure logging for the application"""
    log_level = logging.DEBUG if DEBUG_MODE else logging.INFO

    logging.basicConfig(
        level=log_level,
        format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        handlers=[
            logging.StreamHandler(),
        ]
    )


def get_logger(name):
    """Get a logger instance for a specific module"""
    return logging.getLogger(name)


# Initialize logging when config is imported
setup_logging()
