# config.py
# Manages application configuration for different environments using python-dotenv.

import os
from datetime import timedelta
from dotenv import load_dotenv

# 'basedir' is the package folder, 'PROJECT_ROOT' the folder holding .env
basedir = os.path.abspath(os.path.dirname(__file__))
PROJECT_ROOT = os.path.dirname(basedir)

load_dotenv(os.path.join(PROJECT_ROOT, '.env')) # Load .env from the project root

class Config:
    """Base configuration class with settings common to all environments."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'a-very-hard-to-guess-default-secret-key'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or 'a-strong-jwt-secret-key'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=1)
    JWT_TOKEN_LOCATION = ["headers"]

    # Uploads: images (any image/*) or PDF, at most 10 MB.
    MAX_UPLOAD_BYTES = int(os.environ.get('MAX_UPLOAD_BYTES') or 10 * 1024 * 1024)
    # Leave headroom for multipart framing and base64 data URLs.
    MAX_CONTENT_LENGTH = MAX_UPLOAD_BYTES * 2

    # OCR collaborator. 'gateway' calls an OpenAI-compatible chat endpoint,
    # 'tesseract' runs OCR locally.
    OCR_PROVIDER = os.environ.get('OCR_PROVIDER') or 'gateway'
    OCR_API_URL = os.environ.get('OCR_API_URL') or 'https://ai.gateway.lovable.dev/v1/chat/completions'
    OCR_API_KEY = os.environ.get('OCR_API_KEY')
    OCR_MODEL = os.environ.get('OCR_MODEL') or 'google/gemini-2.5-flash'
    OCR_TIMEOUT_SECONDS = float(os.environ.get('OCR_TIMEOUT_SECONDS') or 60)
    TESSERACT_LANG = os.environ.get('TESSERACT_LANG') or 'eng'

    ADMIN_BOOTSTRAP_PASSWORD = os.environ.get('ADMIN_BOOTSTRAP_PASSWORD') or 'change-me-in-production'

    @staticmethod
    def init_app(app):
        pass

class DevelopmentConfig(Config):
    """Configuration for the development environment."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        'sqlite:///' + os.path.join(PROJECT_ROOT, 'instance', 'certchain-dev.db')

class TestingConfig(Config):
    """Configuration for the testing environment."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///:memory:'
    OCR_API_KEY = 'test-key'
    OCR_TIMEOUT_SECONDS = 5

class ProductionConfig(Config):
    """Configuration for the production environment."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise ValueError("DATABASE_URL is not set for the production environment.")

config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
