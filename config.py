"""Environment-aware configuration for the complaint portal."""
import os
from datetime import timedelta


class BaseConfig:
    def __init__(self) -> None:
        self.SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key-change-me")
        # Remote REST API that owns every complaint, user and category record.
        self.API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:5000/api").rstrip("/")
        self.API_TIMEOUT_SECONDS = int(os.getenv("API_TIMEOUT_SECONDS", 15))
        self.AUTH_COOKIE_DAYS = int(os.getenv("AUTH_COOKIE_DAYS", 7))
        self.COMPLAINT_REFRESH_SECONDS = int(os.getenv("COMPLAINT_REFRESH_SECONDS", 30))
        self.COMPLAINTS_PER_PAGE = int(os.getenv("COMPLAINTS_PER_PAGE", 10))
        self.USERS_PER_PAGE = int(os.getenv("USERS_PER_PAGE", 10))
        self.SESSION_COOKIE_HTTPONLY = True
        self.SESSION_COOKIE_SAMESITE = "Lax"
        self.AUTH_COOKIE_SECURE = os.getenv("AUTH_COOKIE_SECURE", "false").lower() == "true"
        self.PREFERRED_URL_SCHEME = os.getenv("PREFERRED_URL_SCHEME", "https")
        self.WTF_CSRF_TIME_LIMIT = 3600
        self.WTF_CSRF_ENABLED = True
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_DIR = os.getenv("LOG_DIR", os.path.join(os.getcwd(), "logs"))
        self.MAX_IMAGE_UPLOAD_BYTES = int(os.getenv("MAX_IMAGE_UPLOAD_BYTES", 5 * 1024 * 1024))
        self.MAX_CONTENT_LENGTH = int(os.getenv("MAX_REQUEST_BYTES", 8 * 1024 * 1024))
        self.ATTACHMENT_IMAGE_HOSTS = os.getenv("ATTACHMENT_IMAGE_HOSTS", "https://res.cloudinary.com https://cloudinary.com")


class DevelopmentConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = True
        self.ENV = "development"
        self.SESSION_COOKIE_SECURE = False


class ProductionConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.DEBUG = False
        self.ENV = "production"
        self.SESSION_COOKIE_SECURE = True
        self.AUTH_COOKIE_SECURE = os.getenv("AUTH_COOKIE_SECURE", "true").lower() == "true"
        self.API_BASE_URL = os.getenv("API_BASE_URL", "https://your-backend-domain.vercel.app/api").rstrip("/")
        self.PERMANENT_SESSION_LIFETIME = timedelta(days=self.AUTH_COOKIE_DAYS)


class TestingConfig(BaseConfig):
    def __init__(self) -> None:
        super().__init__()
        self.TESTING = True
        self.DEBUG = False
        self.ENV = "testing"
        self.WTF_CSRF_ENABLED = False
        self.SESSION_COOKIE_SECURE = False
        self.API_BASE_URL = "http://api.test/api"
