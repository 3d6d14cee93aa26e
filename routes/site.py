# routes/site.py
from flask import Blueprint, abort, current_app, render_template, request
from urllib.parse import urlparse

from core.models import PAGE_KEYS
from services.content_store import AffiliateLinkStore, PageStore, PostStore, SiteStore
from services.firebase import get_db
from services.navigation import build_nav

site_bp = Blueprint('site', __name__)


def render_page(template, nav_path=None, **context):
    """Render a public page with the nav partial wired for its path"""
    nav = build_nav(
        nav_path or request.path,
        PostStore(get_db()),
        limit=current_app.config.get('NAV_TITLE_LIMIT', 10),
    )
    return render_template(template, nav=nav, site_name=current_app.config['SITE_NAME'], **context)


@site_bp.route('/')
@site_bp.route('/index.html')
def index():
    return render_page(
        'index.html',
        profile=SiteStore(get_db()).get_profile(),
        posts=PostStore(get_db()).published(limit=5),
    )


@site_bp.route('/nav.html')
def nav_partial():
    # Embedding page is named explicitly or taken from the referrer
    path = request.args.get('path')
    if not path and request.referrer:
        path = urlparse(request.referrer).path
    return render_page('nav.html', nav_path=path or '/')


@site_bp.route('/pages/affiliate.html')
def affiliate():
    return render_page('affiliate.html', groups=AffiliateLinkStore(get_db()).grouped())


@site_bp.route('/pages/<key>.html')
def page(key):
    if key not in PAGE_KEYS:
        abort(404)
    context = {'page': PageStore(get_db()).get(key)}
    if key == 'about':
        context['profile'] = SiteStore(get_db()).get_profile()
    return render_page('page.html', **context)


@site_bp.route('/blog/')
@site_bp.route('/blog/index.html')
def blog_index():
    limit = current_app.config.get('BLOG_INDEX_LIMIT', 50)
    return render_page('blog/index.html', posts=PostStore(get_db()).published(limit=limit))


@site_bp.route('/blog/post.html')
def blog_post():
    post_id = request.args.get('id', '').strip()
    post = PostStore(get_db()).get_public(post_id) if post_id else None
    if post is None:
        abort(404)
    return render_page('blog/post.html', post=post)
