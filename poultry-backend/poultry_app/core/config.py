# poultry_app/core/config.py
import os
from dotenv import load_dotenv

# Load .env sekali di awal aplikasi
load_dotenv()

def _env_bool(name: str, default: str = "0") -> bool:
    v = str(os.environ.get(name, default)).strip().lower()
    return v in ("1", "true", "yes", "y", "on")

def _env_list(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [x.strip() for x in str(raw).split(",") if x.strip()]

class Config:
    # =========================
    # APP / SECURITY
    # =========================
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")
    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    DEBUG = _env_bool("FLASK_DEBUG", "0")

    # BASE_DIR = folder poultry-backend
    BASE_DIR = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))

    # Batas body request multipart (lapisan HTTP, bukan budget kompresi)
    MAX_UPLOAD_SIZE = int(os.environ.get("MAX_UPLOAD_SIZE", 10 * 1024 * 1024))
    ALLOWED_IMAGE_TYPES = _env_list("ALLOWED_IMAGE_TYPES", "image/jpeg,image/png,image/webp")

    # =========================
    # VALIDASI GAMBAR
    # =========================
    IMG_MIN_WIDTH = int(os.environ.get("IMG_MIN_WIDTH", 100))
    IMG_MIN_HEIGHT = int(os.environ.get("IMG_MIN_HEIGHT", 100))
    IMG_MAX_WIDTH = int(os.environ.get("IMG_MAX_WIDTH", 4000))
    IMG_MAX_HEIGHT = int(os.environ.get("IMG_MAX_HEIGHT", 4000))

    # =========================
    # KOMPRESI
    # =========================
    MAX_IMAGE_SIZE = int(os.environ.get("MAX_IMAGE_SIZE", 1048576))  # 1 MiB
    COMPRESS_MAX_WIDTH = int(os.environ.get("COMPRESS_MAX_WIDTH", 1024))
    COMPRESS_MAX_HEIGHT = int(os.environ.get("COMPRESS_MAX_HEIGHT", 1024))
    COMPRESS_QUALITY = int(os.environ.get("COMPRESS_QUALITY", 80))
    COMPRESS_QUALITY_STEP = int(os.environ.get("COMPRESS_QUALITY_STEP", 10))
    COMPRESS_QUALITY_FLOOR = int(os.environ.get("COMPRESS_QUALITY_FLOOR", 10))
    COMPRESS_SHRINK_FACTOR = float(os.environ.get("COMPRESS_SHRINK_FACTOR", 0.8))
    COMPRESS_FALLBACK_QUALITY = int(os.environ.get("COMPRESS_FALLBACK_QUALITY", 70))

    # =========================
    # CLASSIFIER (remote ML service)
    # =========================
    ML_SERVICE_URL = os.environ.get("ML_SERVICE_URL", "http://localhost:8000")

    # timeout per operasi (detik)
    ML_PREDICT_TIMEOUT = float(os.environ.get("ML_PREDICT_TIMEOUT", 30))
    ML_BATCH_TIMEOUT = float(os.environ.get("ML_BATCH_TIMEOUT", 60))
    ML_INFO_TIMEOUT = float(os.environ.get("ML_INFO_TIMEOUT", 10))
    ML_RETRAIN_TIMEOUT = float(os.environ.get("ML_RETRAIN_TIMEOUT", 60))
    ML_HEALTH_TIMEOUT = float(os.environ.get("ML_HEALTH_TIMEOUT", 5))

    # Label kelas (urutan = urutan iterasi default) + baseline "sehat"
    CLASS_LABELS = _env_list("CLASS_LABELS", "Coccidiosis,ND,Sehat")
    BASELINE_LABEL = os.environ.get("BASELINE_LABEL", "Sehat")
    CONFIDENCE_THRESHOLD = float(os.environ.get("CONFIDENCE_THRESHOLD", 0.70))

    # =========================
    # BLOB STORAGE
    # =========================
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "local").strip().lower()
    STORAGE_DIR = os.environ.get("STORAGE_DIR", os.path.join(BASE_DIR, "storage"))
    PUBLIC_BASE_URL = os.environ.get("PUBLIC_BASE_URL", "http://localhost:5000/api/storage/files")
    # route storage_bp "/signed/<token>"
    SIGNED_BASE_URL = os.environ.get("SIGNED_BASE_URL", "http://localhost:5000/api/storage/signed")
    UPLOAD_FOLDER_PREFIX = os.environ.get("UPLOAD_FOLDER_PREFIX", "user_uploads")
    SIGNED_URL_TTL_SECONDS = int(os.environ.get("SIGNED_URL_TTL_SECONDS", 3600))

    GOOGLE_CLOUD_PROJECT_ID = os.environ.get("GOOGLE_CLOUD_PROJECT_ID")
    GOOGLE_CLOUD_BUCKET = os.environ.get("GOOGLE_CLOUD_BUCKET", "")

    # =========================
    # DATABASE (MySQL)
    # =========================
    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = os.environ.get("DB_PORT", "3306")  # default MySQL
    DB_NAME = os.environ.get("DB_NAME", "poultry_db")
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")

    # override penuh, mis. "sqlite:///local.db" untuk development
    DATABASE_URL = os.environ.get("DATABASE_URL", "")

    @classmethod
    def database_url(cls) -> str:
        """
        SQLAlchemy MySQL connection string
        """
        if cls.DATABASE_URL:
            return cls.DATABASE_URL
        return (
            f"mysql+pymysql://{cls.DB_USER}:{cls.DB_PASSWORD}"
            f"@{cls.DB_HOST}:{cls.DB_PORT}/{cls.DB_NAME}"
        )
