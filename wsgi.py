# wsgi.py
"""
Production entry points

    gunicorn wsgi:application
    celery -A wsgi.celery worker -Q email_sending,default
    flask --app wsgi watch-subscribers
"""

from app import create_app

application = create_app()
celery = application.celery
