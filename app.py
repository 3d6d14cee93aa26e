# app.py
"""
Flask Application Factory for the BLOOM.INFIVE site

Wires together:
- Public pages with the server-rendered nav partial
- Admin panel and its JSON API (Firebase Auth sessions)
- Gmail OAuth endpoints and the welcome-email Celery task
- Security middleware, rate limiting and CSRF protection
- Logging, health checks and error handling
"""

import os
import time
import logging
import logging.handlers
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional

import click
import redis
from flask import Flask, request, jsonify, g, session
from flask_cors import CORS
from werkzeug.middleware.proxy_fix import ProxyFix
from werkzeug.exceptions import HTTPException

from celery import Celery

from config.settings import CONFIGS, apply_environment
from core.template_engine import safe_html_filter
from core.security_manager import init_security_manager
from middleware.security import csrf, limiter, security_headers, session_expired
from services.firebase import init_firebase
from tasks.email_sender import celery_app, send_welcome_email
from api.auth import auth_bp
from api.admin import admin_api_bp
from api.email_oauth import email_oauth_bp
from api.public import public_bp
from routes.admin import admin_bp
from routes.site import site_bp

_LOG_HANDLER_FLAG = '_site_handler'


def setup_logging(app: Flask) -> None:
    """
    Configure logging for systemd journal integration

    Handlers are attached to the root logger so module loggers and Celery
    task loggers share them. Handlers from an earlier factory call are
    replaced, not duplicated.
    """
    root = logging.getLogger()
    for handler in list(root.handlers):
        if getattr(handler, _LOG_HANDLER_FLAG, False):
            root.removeHandler(handler)

    log_level = getattr(logging, app.config.get('LOG_LEVEL', 'INFO').upper(), logging.INFO)
    root.setLevel(log_level)
    app.logger.setLevel(log_level)

    if app.testing:
        return

    journal_formatter = logging.Formatter(
        fmt=app.config.get('LOG_FORMAT', '%(name)s[%(process)d]: %(levelname)s %(message)s'),
    )
    detailed_formatter = logging.Formatter(
        fmt='%(asctime)s %(name)-20s %(levelname)-8s %(funcName)-15s:%(lineno)-4d %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    handlers = []
    try:
        import systemd.journal
        handler = systemd.journal.JournalHandler(SYSLOG_IDENTIFIER='bloominfive-site')
        handler.setFormatter(journal_formatter)
        handlers.append(handler)
    except ImportError:
        handler = logging.StreamHandler()
        handler.setFormatter(detailed_formatter)
        handlers.append(handler)

    if app.config.get('LOG_FILE'):
        log_path = Path(app.config['LOG_FILE'])
        log_path.parent.mkdir(exist_ok=True, parents=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=10 * 1024 * 1024,  # 10MB
            backupCount=5
        )
        file_handler.setFormatter(detailed_formatter)
        file_handler.setLevel(logging.DEBUG)
        handlers.append(file_handler)

    for handler in handlers:
        setattr(handler, _LOG_HANDLER_FLAG, True)
        root.addHandler(handler)

    if not app.debug:
        for noisy in ('werkzeug', 'urllib3', 'google.auth', 'google.api_core', 'aiosmtplib'):
            logging.getLogger(noisy).setLevel(logging.WARNING)


def create_redis_client(app: Flask) -> redis.Redis:
    """Redis client used by health checks; the limiter and Celery keep their own"""
    client = redis.Redis(
        host=app.config.get('REDIS_HOST', 'localhost'),
        port=app.config.get('REDIS_PORT', 6379),
        db=0,
        decode_responses=True,
        socket_connect_timeout=5,
        socket_timeout=5,
        health_check_interval=30,
    )
    if app.config.get('REDIS_REQUIRED', True):
        try:
            client.ping()
            app.logger.info("Redis connected successfully")
        except redis.ConnectionError as e:
            app.logger.error(f"Redis connection failed: {e}")
            raise
    return client


def configure_celery(app: Flask) -> Celery:
    """Point the task app at the configured broker and bind it to this Flask app"""
    celery_app.conf.update({
        'broker_url': app.config['CELERY_BROKER_URL'],
        'result_backend': app.config['CELERY_RESULT_BACKEND'],
        'task_always_eager': app.config.get('CELERY_TASK_ALWAYS_EAGER', False),
        'task_eager_propagates': False,
    })
    celery_app.flask_app = app

    app.logger.info(f"Celery configured (eager={celery_app.conf.task_always_eager})")
    return celery_app


def configure_security(app: Flask) -> None:
    csrf.init_app(app)
    limiter.init_app(app)

    CORS(app,
         resources={r'/api/*': {'origins': app.config.get('CORS_ORIGINS', [])}},
         supports_credentials=True,
         allow_headers=['Content-Type', 'Authorization', 'X-CSRFToken'])

    app.logger.info("Security features configured")


def register_blueprints(app: Flask) -> None:
    # Function endpoints live at the root: /health, /oauthStart, /oauthCallback
    app.register_blueprint(email_oauth_bp)
    app.register_blueprint(public_bp)

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(admin_api_bp, url_prefix='/api/admin')

    app.register_blueprint(site_bp)
    app.register_blueprint(admin_bp, url_prefix='/admin')

    app.logger.info("Application blueprints registered")


def _error(error: str, message: str, status_code: int):
    return jsonify({
        'error': error,
        'message': message,
        'status_code': status_code
    }), status_code


def configure_error_handlers(app: Flask) -> None:
    @app.errorhandler(400)
    def bad_request(error):
        app.logger.warning(f"Bad request from {request.remote_addr}: {error}")
        return _error('Bad Request', 'Invalid request format or parameters', 400)

    @app.errorhandler(401)
    def unauthorized(error):
        app.logger.warning(f"Unauthorized access attempt from {request.remote_addr}")
        return _error('Unauthorized', 'Authentication required', 401)

    @app.errorhandler(403)
    def forbidden(error):
        app.logger.warning(f"Forbidden access attempt from {request.remote_addr}")
        return _error('Forbidden', 'Insufficient permissions', 403)

    @app.errorhandler(404)
    def not_found(error):
        return _error('Not Found', 'The requested resource was not found', 404)

    @app.errorhandler(413)
    def too_large(error):
        return _error('Payload Too Large', 'Uploaded file is too large', 413)

    @app.errorhandler(429)
    def rate_limit_exceeded(error):
        app.logger.warning(f"Rate limit exceeded for {request.remote_addr}")
        return _error('Rate Limit Exceeded', 'Too many requests. Please try again later.', 429)

    @app.errorhandler(500)
    def internal_error(error):
        app.logger.error(f"Internal server error: {error}", exc_info=True)
        return _error('Internal Server Error', 'An unexpected error occurred', 500)

    @app.errorhandler(Exception)
    def handle_exception(e):
        if isinstance(e, HTTPException):
            return e

        app.logger.error(f"Unhandled exception: {e}", exc_info=True)
        return _error('Internal Server Error', 'An unexpected error occurred', 500)


def configure_health_checks(app: Flask, redis_client: redis.Redis) -> None:
    """``/health`` itself is served by the email OAuth blueprint"""

    @app.route('/health/detailed')
    def detailed_health_check():
        health_status = {
            'status': 'healthy',
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'version': app.config.get('VERSION', '1.0.0'),
            'components': {}
        }

        try:
            app.firestore.collection('site').document('profile').get()
            health_status['components']['firestore'] = 'healthy'
        except Exception as e:
            health_status['components']['firestore'] = f'unhealthy: {str(e)}'
            health_status['status'] = 'unhealthy'

        if app.config.get('REDIS_REQUIRED', True):
            try:
                redis_client.ping()
                health_status['components']['redis'] = 'healthy'
            except Exception as e:
                health_status['components']['redis'] = f'unhealthy: {str(e)}'
                health_status['status'] = 'unhealthy'
        else:
            health_status['components']['redis'] = 'not required'

        if celery_app.conf.task_always_eager:
            health_status['components']['celery_workers'] = 'eager'
        else:
            try:
                active_workers = celery_app.control.inspect(timeout=1.0).active()
                if active_workers:
                    health_status['components']['celery_workers'] = f'healthy ({len(active_workers)} workers)'
                else:
                    health_status['components']['celery_workers'] = 'no workers available'
                    health_status['status'] = 'degraded'
            except Exception as e:
                health_status['components']['celery_workers'] = f'unhealthy: {str(e)}'
                health_status['status'] = 'unhealthy'

        status_code = 200 if health_status['status'] == 'healthy' else 503
        return jsonify(health_status), status_code


def configure_request_middleware(app: Flask) -> None:
    @app.before_request
    def before_request():
        g.start_time = time.perf_counter()

        if 'user_id' in session:
            lifetime = app.config.get('PERMANENT_SESSION_LIFETIME', timedelta(hours=8))
            if session_expired(lifetime):
                user_id = session.get('user_id')
                session.clear()
                app.logger.info(f"Session expired for user {user_id}")

    @app.after_request
    def after_request(response):
        response = security_headers(response)

        if hasattr(g, 'start_time'):
            duration = (time.perf_counter() - g.start_time) * 1000
            if duration > app.config.get('SLOW_REQUEST_THRESHOLD', 1000):
                app.logger.warning(f"Slow request ({duration:.0f}ms): {request.method} {request.path}")

        return response


def register_commands(app: Flask) -> None:
    @app.cli.command('watch-subscribers')
    @click.option('--timeout', type=float, default=None,
                  help='Stop after this many seconds (default: run until interrupted)')
    def watch_subscribers(timeout):
        """Queue a welcome email for every subscriber document created from now on"""
        from services.subscriber_watcher import SubscriberWatcher

        watcher = SubscriberWatcher(app.firestore, send_welcome_email.delay)
        watcher.run_forever(timeout)


def create_app(config_name: Optional[str] = None,
               firestore_client=None,
               storage_bucket=None,
               verify_id_token=None) -> Flask:
    """
    Flask application factory

    Args:
        config_name: 'development', 'testing' or 'production'
        firestore_client: Firestore client to use instead of the Firebase Admin default
        storage_bucket: Cloud Storage bucket to use instead of the configured one
        verify_id_token: Firebase ID token verifier override
    """
    app = Flask(__name__,
                static_folder='static',
                template_folder='templates')

    config_name = config_name or os.environ.get('FLASK_ENV', 'production')
    app.config.from_object(CONFIGS.get(config_name, CONFIGS['production']))

    if not app.config.get('TESTING'):
        apply_environment(app.config)

    if app.config.get('PROXY_FIX'):
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_prefix=1)

    setup_logging(app)
    app.logger.info(f"Starting site application in {config_name} mode")

    app.redis_client = create_redis_client(app)

    init_firebase(app, firestore_client=firestore_client, storage_bucket=storage_bucket)
    init_security_manager(app, verify_id_token=verify_id_token)

    app.celery = configure_celery(app)

    app.jinja_env.filters['safe_html'] = safe_html_filter

    configure_security(app)
    register_blueprints(app)
    configure_error_handlers(app)
    configure_health_checks(app, app.redis_client)
    configure_request_middleware(app)
    register_commands(app)

    app.logger.info("Flask application factory completed successfully")
    return app


if __name__ == '__main__':
    create_app('development').run(host='0.0.0.0', port=5000, debug=True)
