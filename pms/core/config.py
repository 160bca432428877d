from __future__ import annotations

import os


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///pms.db",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    # Base of the public verification links embedded in issued documents
    APP_URL = os.getenv("APP_URL", "http://localhost:5000")
    # Relative to the Flask instance path
    DOCUMENT_STORAGE_DIR = os.getenv("DOCUMENT_STORAGE_DIR", "storage/documents")
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FORMAT = os.getenv("LOG_FORMAT", "standard")
