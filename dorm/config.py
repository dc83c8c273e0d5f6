import os
import logging
from dotenv import load_dotenv

load_dotenv()

class Config:
    # Database Configuration
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASS = os.getenv("DB_PASS", "postgres")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "dormitory")

    @property
    def DATABASE_URL(self):
        # Prefer DATABASE_URL env var if set (for SQLite support)
        url = os.getenv("DATABASE_URL")
        if url:
            return url

        # Build PostgreSQL URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Identity Provisioning Gateway (user accounts are issued there, not here)
    IDENTITY_GATEWAY_URL = os.getenv("IDENTITY_GATEWAY_URL")
    IDENTITY_GATEWAY_TIMEOUT = float(os.getenv("IDENTITY_GATEWAY_TIMEOUT", "10"))

    # Contract documents host: {DOCUMENTS_BASE_URL}/{tenant_id}.pdf|.jpg
    DOCUMENTS_BASE_URL = os.getenv(
        "DOCUMENTS_BASE_URL",
        "https://api-stripe-ban-phuttachad-dormitory.onrender.com/images"
    )
    DOCUMENT_LOOKUP_TIMEOUT = float(os.getenv("DOCUMENT_LOOKUP_TIMEOUT", "5"))

config = Config()

# Log configuration on startup
logging.info(f"Database: {config.DATABASE_URL.split('@')[1] if '@' in config.DATABASE_URL else 'SQLite'}")
logging.info(f"Identity gateway: {config.IDENTITY_GATEWAY_URL or 'not configured'}")
