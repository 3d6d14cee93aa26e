# config/security.py
"""
Security Configuration for the site backend
"""

import os
import secrets
from datetime import timedelta


class SecurityConfig:
    """Security configuration settings"""

    # Encryption settings (used for the stored Gmail refresh token)
    ENCRYPTION_KEY = os.environ.get('ENCRYPTION_KEY') or secrets.token_urlsafe(32)
    ENCRYPTION_SALT = os.environ.get('ENCRYPTION_SALT', 'bloominfive_site_salt')

    # Session settings
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_urlsafe(32)
    SESSION_COOKIE_SECURE = True
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)

    # Rate limiting
    RATELIMIT_STORAGE_URI = 'redis://localhost:6379/3'
    RATELIMIT_STRATEGY = 'fixed-window'
    RATELIMIT_HEADERS_ENABLED = True
    RATELIMIT_DEFAULT = '1000 per hour;100 per minute'
    SUBSCRIBE_RATE_LIMIT = '10 per minute'
    LOGIN_RATE_LIMIT = '5 per minute'

    # CSRF protection
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = 3600  # 1 hour

    # Content Security Policy
    CSP_POLICY = {
        'default-src': "'self'",
        'script-src': "'self' 'unsafe-inline' https://www.gstatic.com",
        'style-src': "'self' 'unsafe-inline'",
        'img-src': "'self' data: https:",
        'connect-src': "'self' https://*.googleapis.com",
        'font-src': "'self'",
        'frame-src': "https://www.youtube.com https://www.youtube-nocookie.com https://player.vimeo.com",
        'object-src': "'none'",
        'base-uri': "'self'",
        'form-action': "'self'"
    }

    # Security headers
    SECURITY_HEADERS = {
        'X-Content-Type-Options': 'nosniff',
        'X-Frame-Options': 'DENY',
        'X-XSS-Protection': '1; mode=block',
        'Strict-Transport-Security': 'max-age=31536000; includeSubDomains',
        'Referrer-Policy': 'strict-origin-when-cross-origin',
        'Permissions-Policy': 'camera=(), microphone=(), geolocation=()'
    }

    # File upload security
    MAX_CONTENT_LENGTH = 8 * 1024 * 1024  # 8MB
    UPLOAD_EXTENSIONS = {'.jpg', '.jpeg', '.png', '.gif', '.webp'}


class ProductionSecurityConfig(SecurityConfig):
    """Production deployment behind a proxy / load balancer"""

    PREFERRED_URL_SCHEME = 'https'
    PROXY_FIX = True

    # Log settings for journald
    LOG_FORMAT = '%(levelname)s:%(name)s:%(message)s'
