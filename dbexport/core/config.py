import os

# --- CONFIGURATION ---
# Everything is read from the environment (Docker / Dokploy style).
# Nothing here is persisted: uploaded databases only live in process memory.

# AI schema summary (Gemini REST API)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY") or os.getenv("API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-3-flash-preview")
GEMINI_API_URL = os.getenv("GEMINI_API_URL", "https://generativelanguage.googleapis.com/v1beta")
SUMMARY_LANGUAGE = os.getenv("SUMMARY_LANGUAGE", "English")
SUMMARY_TIMEOUT = float(os.getenv("SUMMARY_TIMEOUT", "30"))

# Uploads
MAX_UPLOAD_MB = int(os.getenv("MAX_UPLOAD_MB", "200"))
MAX_UPLOAD_BYTES = MAX_UPLOAD_MB * 1024 * 1024
ALLOWED_EXTENSIONS = tuple(
    ext.strip().lower()
    for ext in os.getenv("ALLOWED_EXTENSIONS", ".db,.sqlite").split(",")
    if ext.strip()
)

# Server
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "80"))

APP_VERSION = "1.0.0"
