import os

# ---------- Database ----------
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "grocery_admin")

# ---------- Auth ----------
SECRET_KEY = os.getenv("JWT_SECRET", "dev-secret-key-change-me")
ALGORITHM = "HS256"
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", str(60 * 12)))

# ---------- Logging ----------
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ---------- Time rules ----------
# Wall-clock zone the store operates in; slot windows are local times.
STORE_TIMEZONE = os.getenv("STORE_TIMEZONE", "Asia/Kolkata")

# ---------- Image host ----------
IMAGE_UPLOAD_URL = os.getenv("IMAGE_UPLOAD_URL", "")
IMAGE_UPLOAD_PRESET = os.getenv("IMAGE_UPLOAD_PRESET", "")
IMAGE_UPLOAD_FOLDER = os.getenv("IMAGE_UPLOAD_FOLDER", "Products")
IMAGE_UPLOAD_TIMEOUT = float(os.getenv("IMAGE_UPLOAD_TIMEOUT", "15"))
MAX_IMAGE_BYTES = int(os.getenv("MAX_IMAGE_BYTES", str(5 * 1024 * 1024)))

# ---------- HTTP ----------
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
