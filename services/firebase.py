# services/firebase.py
"""
Firebase Admin SDK bootstrap: Firestore client and Cloud Storage bucket
"""

import logging
from typing import Optional

import firebase_admin
from firebase_admin import credentials, firestore, storage
from flask import Flask, current_app

logger = logging.getLogger(__name__)


def init_firebase(app: Flask, firestore_client=None, storage_bucket=None) -> None:
    """
    Attach Firestore and Storage handles to the app

    Tests pass in-memory doubles; otherwise the default Firebase app is
    initialized from FIREBASE_CREDENTIALS (service account JSON) or, when
    unset, Application Default Credentials.
    """
    if firestore_client is None or storage_bucket is None:
        firebase_app = _get_or_create_firebase_app(app)
        if firestore_client is None:
            firestore_client = firestore.client(app=firebase_app)
        if storage_bucket is None and app.config.get('FIREBASE_STORAGE_BUCKET'):
            storage_bucket = storage.bucket(app.config['FIREBASE_STORAGE_BUCKET'], app=firebase_app)

    app.firestore = firestore_client
    app.storage_bucket = storage_bucket
    app.logger.info("Firebase services attached")


def _get_or_create_firebase_app(app: Flask) -> firebase_admin.App:
    try:
        return firebase_admin.get_app()
    except ValueError:
        pass

    cred_path = app.config.get('FIREBASE_CREDENTIALS')
    cred = credentials.Certificate(cred_path) if cred_path else credentials.ApplicationDefault()

    options = {}
    if app.config.get('FIREBASE_PROJECT_ID'):
        options['projectId'] = app.config['FIREBASE_PROJECT_ID']
    if app.config.get('FIREBASE_STORAGE_BUCKET'):
        options['storageBucket'] = app.config['FIREBASE_STORAGE_BUCKET']

    logger.info(f"Initializing Firebase Admin SDK ({'service account' if cred_path else 'ADC'})")
    return firebase_admin.initialize_app(cred, options or None)


def get_db():
    """Firestore client of the current app"""
    return current_app.firestore


def get_bucket():
    bucket = getattr(current_app, 'storage_bucket', None)
    if bucket is None:
        raise RuntimeError("FIREBASE_STORAGE_BUCKET is not configured")
    return bucket
