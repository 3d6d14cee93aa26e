# api/admin.py
"""
Admin content API: posts, pages, affiliate links and the profile photo

Every write answers with a short status message the panel shows as-is.
"""

import logging
import os
import uuid

from flask import Blueprint, current_app, jsonify, request
from werkzeug.utils import secure_filename

from core.models import AffiliateLink, Post, SitePage, ValidationError, PAGE_KEYS
from middleware.security import require_auth
from services.content_store import AffiliateLinkStore, PageStore, PostStore, SiteStore
from services.firebase import get_bucket, get_db

admin_api_bp = Blueprint('admin_api', __name__)
logger = logging.getLogger(__name__)


@admin_api_bp.before_request
@require_auth
def _require_admin():
    return None


@admin_api_bp.errorhandler(ValidationError)
def _validation_error(error: ValidationError):
    return jsonify({'error': 'Validation failed', 'fields': error.fields}), 400


def _payload():
    if request.is_json:
        data = request.get_json(silent=True)
        return data if isinstance(data, dict) else {}
    return request.form.to_dict()


def _not_found(kind: str):
    return jsonify({'error': f'{kind} not found'}), 404


# -------- posts --------

@admin_api_bp.route('/posts', methods=['GET'])
def list_posts():
    posts = PostStore(get_db()).list_all()
    return jsonify({'posts': [p.to_json() for p in posts], 'count': len(posts)})


@admin_api_bp.route('/posts/<post_id>', methods=['GET'])
def get_post(post_id):
    post = PostStore(get_db()).get(post_id)
    if post is None:
        return _not_found('Post')
    return jsonify(post.to_json())


@admin_api_bp.route('/posts', methods=['POST'])
def create_post():
    post = Post.from_input(_payload())
    post_id = PostStore(get_db()).create(post)
    return jsonify({'id': post_id, 'message': f'Post saved as {post.status.value}.'}), 201


@admin_api_bp.route('/posts/<post_id>', methods=['PUT'])
def update_post(post_id):
    post = Post.from_input(_payload())
    if not PostStore(get_db()).update(post_id, post):
        return _not_found('Post')
    return jsonify({'id': post_id, 'message': 'Post updated.'})


@admin_api_bp.route('/posts/<post_id>', methods=['DELETE'])
def delete_post(post_id):
    if not PostStore(get_db()).delete(post_id):
        return _not_found('Post')
    return jsonify({'id': post_id, 'message': 'Post deleted.'})


# -------- pages --------

@admin_api_bp.route('/pages', methods=['GET'])
def list_pages():
    store = PageStore(get_db())
    return jsonify({'pages': [store.get(key).to_json() for key in PAGE_KEYS]})


@admin_api_bp.route('/pages/<key>', methods=['GET'])
def get_page(key):
    if key not in PAGE_KEYS:
        return _not_found('Page')
    return jsonify(PageStore(get_db()).get(key).to_json())


@admin_api_bp.route('/pages/<key>', methods=['PUT'])
def save_page(key):
    page = SitePage.from_input(key, _payload())
    PageStore(get_db()).save(page)
    return jsonify({'key': page.key, 'message': f'{page.title} page saved.'})


# -------- affiliate links --------

@admin_api_bp.route('/affiliate-links', methods=['GET'])
def list_affiliate_links():
    links = AffiliateLinkStore(get_db()).list_all()
    return jsonify({'links': [link.to_json() for link in links], 'count': len(links)})


@admin_api_bp.route('/affiliate-links', methods=['POST'])
def create_affiliate_link():
    link = AffiliateLink.from_input(_payload())
    link_id = AffiliateLinkStore(get_db()).create(link)
    return jsonify({'id': link_id, 'message': 'Affiliate link added.'}), 201


@admin_api_bp.route('/affiliate-links/<link_id>', methods=['PUT'])
def update_affiliate_link(link_id):
    link = AffiliateLink.from_input(_payload())
    if not AffiliateLinkStore(get_db()).update(link_id, link):
        return _not_found('Affiliate link')
    return jsonify({'id': link_id, 'message': 'Affiliate link updated.'})


@admin_api_bp.route('/affiliate-links/<link_id>', methods=['DELETE'])
def delete_affiliate_link(link_id):
    if not AffiliateLinkStore(get_db()).delete(link_id):
        return _not_found('Affiliate link')
    return jsonify({'id': link_id, 'message': 'Affiliate link deleted.'})


# -------- profile photo --------

@admin_api_bp.route('/profile', methods=['GET'])
def get_profile():
    return jsonify(SiteStore(get_db()).get_profile())


@admin_api_bp.route('/profile/photo', methods=['POST'])
def upload_profile_photo():
    upload = request.files.get('photo')
    if upload is None or not upload.filename:
        raise ValidationError({'photo': 'Choose an image to upload'})

    filename = secure_filename(upload.filename)
    extension = os.path.splitext(filename)[1].lower()
    if extension not in current_app.config['UPLOAD_EXTENSIONS']:
        raise ValidationError({'photo': 'Unsupported image type'})

    storage_path = f"site/profile/{uuid.uuid4().hex}{extension}"
    blob = get_bucket().blob(storage_path)
    blob.upload_from_file(upload.stream, content_type=upload.mimetype)
    blob.make_public()

    SiteStore(get_db()).set_profile_photo(blob.public_url, storage_path)
    current_app.security_manager.log_security_event('profile_photo_uploaded', {
        'storage_path': storage_path,
    })
    return jsonify({'photoUrl': blob.public_url, 'message': 'Profile photo updated.'})
