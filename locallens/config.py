import os
from dotenv import load_dotenv

# Loads the .env file so os.getenv can find the settings below
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# --- Server ---
HOST = os.getenv("HOST", "127.0.0.1")
PORT = int(os.getenv("PORT", "8000"))

# --- Database ---
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./locallens.db")

# --- JWT ---
JWT_SECRET = os.getenv("JWT_SECRET", "super_secret_jwt_key")
JWT_REFRESH_SECRET = os.getenv("JWT_REFRESH_SECRET") or JWT_SECRET
JWT_ALGORITHM = "HS256"
JWT_ISSUER = "locallens-api"
JWT_AUDIENCE = "locallens-client"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 24 * 7)))  # 7 days
REFRESH_TOKEN_EXPIRE_DAYS = int(os.getenv("REFRESH_TOKEN_EXPIRE_DAYS", "30"))

# --- CORS ---
DEV_ORIGINS = [
    "http://localhost:3000",
    "http://localhost:5173",
    "http://127.0.0.1:3000",
    "http://127.0.0.1:5173",
]
ALLOWED_ORIGINS = [o.strip() for o in os.getenv("ALLOWED_ORIGINS", "").split(",") if o.strip()] or DEV_ORIGINS

# --- Cloudinary ---
CLOUDINARY_CLOUD_NAME = os.getenv("CLOUDINARY_CLOUD_NAME", "")
CLOUDINARY_API_KEY = os.getenv("CLOUDINARY_API_KEY", "")
CLOUDINARY_API_SECRET = os.getenv("CLOUDINARY_API_SECRET", "")

# --- Rate limiting ---
RATE_LIMIT_ENABLED = _flag("RATE_LIMIT_ENABLED", "true")
RATE_LIMIT_WINDOW_SECONDS = int(os.getenv("RATE_LIMIT_WINDOW_SECONDS", str(15 * 60)))
RATE_LIMIT_MAX = int(os.getenv("RATE_LIMIT_MAX", "100"))
AUTH_RATE_LIMIT_MAX = int(os.getenv("AUTH_RATE_LIMIT_MAX", "10"))


def is_development() -> bool:
    return ENVIRONMENT == "development"
