from __future__ import annotations

import logging
from pathlib import Path

from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory
from sqlalchemy.engine import Engine

from vendebot.core import config

logger = logging.getLogger(__name__)
STARTUP_PREFIX = "[STARTUP]"
MIGRATIONS_PREFIX = "[MIGRATIONS]"

_WHATSAPP_CREDENTIALS = {
    "twilio": ("TWILIO_ACCOUNT_SID", "TWILIO_AUTH_TOKEN", "TWILIO_WHATSAPP_FROM"),
    "cloud": ("META_WA_ACCESS_TOKEN", "META_WA_PHONE_NUMBER_ID", "META_APP_SECRET"),
}


def validate_database_environment() -> None:
    if config.IS_PROD and config.DATABASE_URL.startswith("sqlite"):
        logger.critical("%s SQLite no está permitido en producción", STARTUP_PREFIX)
        raise RuntimeError("SQLite is forbidden in production environment")


def warn_on_mock_providers() -> None:
    """Avisa por log cuando faltan credenciales o se usan proveedores de prueba."""
    missing = [name for name in _WHATSAPP_CREDENTIALS.get(config.WHATSAPP_PROVIDER, ()) if not getattr(config, name)]
    if missing:
        logger.warning("%s WHATSAPP_PROVIDER=%s sin %s", STARTUP_PREFIX, config.WHATSAPP_PROVIDER, ", ".join(missing))
    if config.AI_PROVIDER == "openai" and not config.OPENAI_API_KEY:
        logger.warning("%s AI_PROVIDER=openai sin OPENAI_API_KEY, se usará el modelo mock", STARTUP_PREFIX)
    if config.AI_PROVIDER == "gemini" and not config.GOOGLE_AI_API_KEY:
        logger.warning("%s AI_PROVIDER=gemini sin GOOGLE_AI_API_KEY, se usará el modelo mock", STARTUP_PREFIX)

    if not config.IS_PROD:
        return
    for setting in ("AI_PROVIDER", "WHATSAPP_PROVIDER", "PAYMENT_PROVIDER"):
        if getattr(config, setting) == "mock":
            logger.warning("%s %s=mock en producción", STARTUP_PREFIX, setting)
    if not config.WHATSAPP_VALIDATE_SIGNATURE:
        logger.warning("%s WHATSAPP_VALIDATE_SIGNATURE desactivado en producción", STARTUP_PREFIX)


def ensure_migrations_applied(*, engine: Engine, alembic_config_path: Path) -> None:
    if config.IS_TEST or config.DATABASE_URL.startswith("sqlite"):
        logger.info("%s chequeo omitido env=%s", MIGRATIONS_PREFIX, config.ENV_NORMALIZED)
        return

    if not alembic_config_path.exists():
        logger.critical("%s no se encontró alembic.ini path=%s", MIGRATIONS_PREFIX, alembic_config_path)
        raise RuntimeError("alembic config not found")

    expected_heads = set(ScriptDirectory.from_config(Config(str(alembic_config_path))).get_heads())
    with engine.connect() as connection:
        current_heads = set(MigrationContext.configure(connection).get_current_heads())

    if not current_heads:
        logger.critical("%s la base no tiene migraciones aplicadas", MIGRATIONS_PREFIX)
        raise RuntimeError("Database has no migration state")
    if current_heads != expected_heads:
        logger.critical(
            "%s migraciones pendientes current=%s expected=%s",
            MIGRATIONS_PREFIX,
            sorted(current_heads),
            sorted(expected_heads),
        )
        raise RuntimeError("Pending migrations detected")

    logger.info("%s estado de migraciones verificado head=%s", MIGRATIONS_PREFIX, sorted(current_heads))
