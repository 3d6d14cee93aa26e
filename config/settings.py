# config/settings.py
"""
Environment-specific application configuration

Values are class attributes so they can be loaded with
``app.config.from_object``; ``apply_environment`` layers environment
variables on top at app creation time.
"""

import os
from typing import Any, Dict, List

from config.security import SecurityConfig, ProductionSecurityConfig


def _split_list(value: str) -> List[str]:
    return [item.strip() for item in (value or '').split(',') if item.strip()]


class BaseConfig(SecurityConfig):
    """Settings shared by every environment"""

    VERSION = '1.0.0'
    LOG_LEVEL = 'INFO'

    # Site
    SITE_NAME = 'BLOOM.INFIVE'
    SITE_URL = 'https://bloominfive.blog'
    NAV_TITLE_LIMIT = 10
    BLOG_INDEX_LIMIT = 50
    WELCOME_EMAIL_ON_SUBSCRIBE = True

    # Firebase (server side)
    FIREBASE_CREDENTIALS = None  # path to a service account JSON, None = ADC
    FIREBASE_PROJECT_ID = None
    FIREBASE_STORAGE_BUCKET = None

    # Firebase web config exposed to the browser
    FIREBASE_WEB_CONFIG = {
        'apiKey': 'REPLACE_ME',
        'authDomain': 'REPLACE_ME',
        'projectId': 'REPLACE_ME',
        'storageBucket': 'REPLACE_ME',
        'messagingSenderId': 'REPLACE_ME',
        'appId': 'REPLACE_ME',
    }

    # Admin access
    ADMIN_EMAILS: List[str] = []

    # Gmail OAuth / SMTP
    GMAIL_CLIENT_ID = None
    GMAIL_CLIENT_SECRET = None
    GMAIL_SENDER = None
    GMAIL_SCOPES = ['https://www.googleapis.com/auth/gmail.send']
    OAUTH_CALLBACK_PATH = 'oauthCallback'
    SMTP_HOST = 'smtp.gmail.com'
    SMTP_PORT = 587
    SMTP_TIMEOUT = 60

    # Redis / Celery
    REDIS_HOST = 'localhost'
    REDIS_PORT = 6379
    CELERY_BROKER_URL = 'redis://localhost:6379/2'
    CELERY_RESULT_BACKEND = 'redis://localhost:6379/2'
    CELERY_TASK_ALWAYS_EAGER = False

    # CORS
    CORS_ORIGINS = ['http://localhost:5000']

    # Monitoring
    SLOW_REQUEST_THRESHOLD = 1000  # ms


class DevelopmentConfig(BaseConfig):
    DEBUG = True
    LOG_LEVEL = 'DEBUG'
    SESSION_COOKIE_SECURE = False
    LOG_FILE = 'logs/site.log'


class TestingConfig(BaseConfig):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    ENCRYPTION_KEY = 'test-encryption-key'
    SESSION_COOKIE_SECURE = False
    WTF_CSRF_ENABLED = False
    RATELIMIT_ENABLED = False
    RATELIMIT_STORAGE_URI = 'memory://'
    CELERY_BROKER_URL = 'memory://'
    CELERY_RESULT_BACKEND = 'cache+memory://'
    CELERY_TASK_ALWAYS_EAGER = True
    REDIS_REQUIRED = False
    GMAIL_CLIENT_ID = 'test-client-id'
    GMAIL_CLIENT_SECRET = 'test-client-secret'
    GMAIL_SENDER = 'info@bloominfive.blog'
    FIREBASE_STORAGE_BUCKET = 'test-bucket.appspot.com'


class ProductionConfig(ProductionSecurityConfig, BaseConfig):
    LOG_LEVEL = 'INFO'


CONFIGS = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def apply_environment(config: Dict[str, Any], environ=None) -> None:
    """Override configuration values from environment variables"""
    environ = os.environ if environ is None else environ

    plain = (
        'SECRET_KEY', 'ENCRYPTION_KEY', 'LOG_LEVEL',
        'SITE_NAME', 'SITE_URL',
        'FIREBASE_CREDENTIALS', 'FIREBASE_PROJECT_ID', 'FIREBASE_STORAGE_BUCKET',
        'GMAIL_CLIENT_ID', 'GMAIL_CLIENT_SECRET', 'GMAIL_SENDER',
        'REDIS_HOST', 'CELERY_BROKER_URL', 'CELERY_RESULT_BACKEND',
        'RATELIMIT_STORAGE_URI',
    )
    for key in plain:
        if environ.get(key):
            config[key] = environ[key]

    if environ.get('REDIS_PORT'):
        config['REDIS_PORT'] = int(environ['REDIS_PORT'])
    if environ.get('APP_VERSION'):
        config['VERSION'] = environ['APP_VERSION']
    if environ.get('ADMIN_EMAILS'):
        config['ADMIN_EMAILS'] = [e.lower() for e in _split_list(environ['ADMIN_EMAILS'])]
    if environ.get('CORS_ORIGINS'):
        config['CORS_ORIGINS'] = _split_list(environ['CORS_ORIGINS'])

    web_config = dict(config.get('FIREBASE_WEB_CONFIG') or {})
    for field, env_key in (
        ('apiKey', 'FIREBASE_WEB_API_KEY'),
        ('authDomain', 'FIREBASE_WEB_AUTH_DOMAIN'),
        ('projectId', 'FIREBASE_WEB_PROJECT_ID'),
        ('storageBucket', 'FIREBASE_WEB_STORAGE_BUCKET'),
        ('messagingSenderId', 'FIREBASE_WEB_MESSAGING_SENDER_ID'),
        ('appId', 'FIREBASE_WEB_APP_ID'),
    ):
        if environ.get(env_key):
            web_config[field] = environ[env_key]
    config['FIREBASE_WEB_CONFIG'] = web_config
