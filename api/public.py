# api/public.py
"""
Public endpoints used by the static pages
"""

import logging

from flask import Blueprint, current_app, jsonify, request

from core.models import Subscriber, ValidationError
from middleware.security import limiter
from services.content_store import PostStore, SubscriberStore
from services.firebase import get_db
from services.navigation import base_path, recent_post_titles
from tasks.email_sender import send_welcome_email

public_bp = Blueprint('public', __name__)
logger = logging.getLogger(__name__)


def _subscribe_limit():
    return current_app.config.get('SUBSCRIBE_RATE_LIMIT', '10 per minute')


@public_bp.route('/firebase-config.json')
def firebase_config():
    """Browser config object identifying the Firebase project"""
    return jsonify(current_app.config['FIREBASE_WEB_CONFIG'])


@public_bp.route('/api/subscribers', methods=['POST'])
@limiter.limit(_subscribe_limit)
def subscribe():
    data = request.get_json(silent=True) if request.is_json else request.form.to_dict()
    try:
        subscriber = Subscriber.from_input(data if isinstance(data, dict) else {})
    except ValidationError as e:
        return jsonify({'error': 'Please enter a valid email address.', 'fields': e.fields}), 400

    store = SubscriberStore(get_db())
    if store.find_by_email(subscriber.email):
        return jsonify({'message': 'You are already subscribed.', 'status': 'already_subscribed'}), 200

    subscriber_id = store.create(subscriber)

    if current_app.config.get('WELCOME_EMAIL_ON_SUBSCRIBE', True):
        try:
            send_welcome_email.delay(subscriber_id)
        except Exception as e:
            logger.error(f"Failed to queue welcome email for {subscriber_id}: {e}", exc_info=True)

    return jsonify({'id': subscriber_id, 'message': 'Thanks for subscribing!', 'status': 'subscribed'}), 201


@public_bp.route('/api/posts/recent')
def recent_posts():
    base = base_path(request.args.get('path', '/'))
    limit = current_app.config.get('NAV_TITLE_LIMIT', 10)
    try:
        titles = recent_post_titles(PostStore(get_db()), base, limit=limit)
    except Exception as e:
        logger.error(f"Recent posts query failed: {e}", exc_info=True)
        return jsonify({'error': 'Couldn’t load posts.'}), 503
    return jsonify({'posts': [t.__dict__ for t in titles]})
