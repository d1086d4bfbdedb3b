import os

from dotenv import load_dotenv

# Carga el .env de la raíz del proyecto
load_dotenv()

_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in _TRUE_VALUES


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./vendebot.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_TEST = ENV_NORMALIZED == "test"
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

APP_URL = os.getenv("APP_URL", "http://localhost:8000").strip().rstrip("/")

# Modelo de lenguaje
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "").strip()
GOOGLE_AI_API_KEY = os.getenv("GOOGLE_AI_API_KEY", "").strip()
GEMINI_OPENAI_BASE_URL = os.getenv(
    "GEMINI_OPENAI_BASE_URL",
    "https://generativelanguage.googleapis.com/v1beta/openai/",
)

_ai_provider_env = os.getenv("AI_PROVIDER", "").strip().lower()
if _ai_provider_env in {"openai", "gemini", "mock"}:
    AI_PROVIDER = _ai_provider_env
elif OPENAI_API_KEY:
    AI_PROVIDER = "openai"
elif GOOGLE_AI_API_KEY:
    AI_PROVIDER = "gemini"
else:
    AI_PROVIDER = "mock"

AI_MODEL = os.getenv("AI_MODEL", "").strip() or (
    "gemini-2.0-flash" if AI_PROVIDER == "gemini" else "gpt-4o-mini"
)
_ai_temperature_env = os.getenv("AI_TEMPERATURE", "").strip()
AI_TEMPERATURE = float(_ai_temperature_env) if _ai_temperature_env else None
AI_MAX_TOOL_ROUNDS = _env_int("AI_MAX_TOOL_ROUNDS", 5)
AI_MAX_CONTEXT_MESSAGES = _env_int("AI_MAX_CONTEXT_MESSAGES", 20)
AI_GROUNDING_GUARD = _env_flag("AI_GROUNDING_GUARD", "1")

# WhatsApp
WHATSAPP_PROVIDER = os.getenv("WHATSAPP_PROVIDER", "mock" if IS_DEV else "twilio").strip().lower()
WHATSAPP_VERIFY_TOKEN = os.getenv("WHATSAPP_VERIFY_TOKEN", "").strip()
WHATSAPP_VALIDATE_SIGNATURE = _env_flag("WHATSAPP_VALIDATE_SIGNATURE", "0" if IS_DEV else "1")

TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
TWILIO_WHATSAPP_FROM = os.getenv("TWILIO_WHATSAPP_FROM", "")

META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", "")
META_WA_PHONE_NUMBER_ID = os.getenv("META_WA_PHONE_NUMBER_ID", "")
META_APP_SECRET = os.getenv("META_APP_SECRET", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v19.0")

# Tenant usado cuando el número del negocio no coincide con ninguno
_default_tenant_env = os.getenv("DEFAULT_TENANT_ID", "").strip()
DEFAULT_TENANT_ID = int(_default_tenant_env) if _default_tenant_env.isdigit() else None

# MercadoPago
MERCADOPAGO_API_BASE = os.getenv("MERCADOPAGO_API_BASE", "https://api.mercadopago.com").rstrip("/")
PAYMENT_PROVIDER = os.getenv("PAYMENT_PROVIDER", "mock" if IS_DEV else "mercadopago").strip().lower()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"
