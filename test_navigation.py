from datetime import datetime, timezone

import pytest

from services.content_store import PostStore
from services.navigation import base_path, build_nav, link_map


def _at(year, month, day):
    return datetime(year, month, day, tzinfo=timezone.utc)


def _publish(db, doc_id, title, when, status='published'):
    data = {'status': status, 'publishAt': when, 'content': f'<p>{title} body</p>', 'excerpt': f'{title} excerpt'}
    if title is not None:
        data['title'] = title
    db.collection('posts').document(doc_id).set(data)


@pytest.mark.parametrize('path, expected', [
    ('/', './'),
    ('/index.html', './'),
    ('/blog/post.html', '../'),
    ('/pages/about.html', '../'),
    ('/admin/', '../'),
    ('', './'),
])
def test_base_path(path, expected):
    assert base_path(path) == expected


def test_link_map():
    links = link_map('../')
    assert links == {
        'about': '../pages/about.html',
        'upcoming': '../pages/upcoming.html',
        'activities': '../pages/activities.html',
        'newsletter': '../pages/newsletter.html',
        'amazon': '../pages/affiliate.html',
        'blogIndex': '../blog/index.html',
        'home': '../index.html',
    }


def test_nav_lists_only_public_posts_newest_first(db, now):
    _publish(db, 'a', 'Alpha', _at(2026, 1, 1))
    _publish(db, 'b', 'Beta', _at(2026, 2, 1))
    _publish(db, 'c', 'Future', _at(2026, 12, 1))
    _publish(db, 'd', 'Hidden', _at(2026, 1, 15), status='draft')
    _publish(db, 'e', None, _at(2025, 12, 1))

    nav = build_nav('/pages/about.html', PostStore(db), now=now)

    assert [(t.id, t.title) for t in nav.titles] == [('b', 'Beta'), ('a', 'Alpha'), ('e', 'Untitled')]
    assert nav.titles[0].href == '../blog/post.html?id=b'
    assert nav.message is None


def test_nav_caps_titles(db, now):
    for day in range(1, 16):
        _publish(db, f'p{day}', f'Post {day}', _at(2026, 1, day))
    nav = build_nav('/', PostStore(db), now=now)
    assert len(nav.titles) == 10
    assert nav.titles[0].title == 'Post 15'


def test_nav_empty_and_error_messages(db, now):
    assert build_nav('/', PostStore(db), now=now).message == 'No posts yet.'

    db.fail_queries = True
    nav = build_nav('/', PostStore(db), now=now)
    assert nav.titles == []
    assert nav.message == 'Couldn’t load posts.'
    assert nav.links['home'] == './index.html'


def test_nav_partial_escapes_titles(client, db):
    _publish(db, 'x', '<img src=x onerror=alert(1)>', _at(2024, 1, 1))
    html = client.get('/nav.html?path=/blog/index.html').get_data(as_text=True)
    assert '<img src=x' not in html
    assert '&lt;img src=x onerror=alert(1)&gt;' in html
    assert 'href="../blog/post.html?id=x"' in html


def test_nav_partial_uses_referrer(client):
    html = client.get('/nav.html', headers={'Referer': 'https://bloominfive.blog/pages/about.html'}).get_data(as_text=True)
    assert 'href="../index.html"' in html
    assert 'No posts yet.' in html


def test_nav_partial_reports_load_failure(client, db):
    db.fail_queries = True
    response = client.get('/nav.html')
    assert response.status_code == 200
    assert 'Couldn’t load posts.' in response.get_data(as_text=True)


def test_home_page(client, db):
    db.collection('site').document('profile').set({'photoUrl': 'https://cdn.example/me.png'})
    _publish(db, 'a', 'Alpha', _at(2024, 1, 1))
    html = client.get('/').get_data(as_text=True)
    assert 'https://cdn.example/me.png' in html
    assert 'href="./blog/post.html?id=a"' in html
    assert client.get('/index.html').status_code == 200


def test_content_pages(client, db):
    db.collection('pages').document('about').set({'title': 'About me', 'content': '<p>Hello</p><script>x()</script>'})
    db.collection('site').document('profile').set({'photoUrl': 'https://cdn.example/me.png'})

    html = client.get('/pages/about.html').get_data(as_text=True)
    assert 'About me' in html
    assert '<p>Hello</p>' in html
    assert '<script>x()</script>' not in html
    assert 'https://cdn.example/me.png' in html
    assert 'href="../index.html"' in html

    newsletter = client.get('/pages/newsletter.html').get_data(as_text=True)
    assert 'data-subscribe' in newsletter

    assert client.get('/pages/secret.html').status_code == 404


def test_affiliate_page_groups_by_category(client, db):
    links = db.collection('affiliateLinks')
    links.document('1').set({'title': 'Journal', 'url': 'https://a.co/j', 'category': 'stationery'})
    links.document('2').set({'title': 'Bible', 'url': 'https://a.co/b', 'category': 'books'})

    html = client.get('/pages/affiliate.html').get_data(as_text=True)
    assert html.index('Books') < html.index('Stationery')
    assert 'href="https://a.co/j"' in html


def test_blog_pages_only_show_public_posts(client, db):
    _publish(db, 'live', 'Live post', _at(2024, 1, 1))
    _publish(db, 'later', 'Later post', _at(2099, 1, 1))
    _publish(db, 'draft', 'Draft post', _at(2024, 1, 1), status='draft')

    index = client.get('/blog/index.html').get_data(as_text=True)
    assert 'Live post' in index
    assert 'Later post' not in index
    assert 'Draft post' not in index

    post = client.get('/blog/post.html?id=live')
    assert post.status_code == 200
    assert 'Live post body' in post.get_data(as_text=True)

    assert client.get('/blog/post.html?id=later').status_code == 404
    assert client.get('/blog/post.html?id=draft').status_code == 404
    assert client.get('/blog/post.html').status_code == 404
    assert client.get('/blog/post.html?id=posts/live').status_code == 404


def test_post_store_rejects_path_like_ids(db):
    _publish(db, 'live', 'Live post', _at(2024, 1, 1))
    store = PostStore(db)
    assert store.get('live').title == 'Live post'
    assert store.get('a/b') is None
    assert store.get_public('live/comments') is None


def test_admin_panel_requires_login(client):
    response = client.get('/admin/')
    assert response.status_code == 302
    assert response.headers['Location'].endswith('/admin/login')
    assert client.get('/admin/login').status_code == 200


def test_admin_panel_and_theme_toggle(admin_client):
    html = admin_client.get('/admin/').get_data(as_text=True)
    assert 'data-theme="light"' in html

    assert admin_client.post('/admin/theme', json={}).get_json() == {'theme': 'dark'}
    assert 'data-theme="dark"' in admin_client.get('/admin/').get_data(as_text=True)
    assert admin_client.post('/admin/theme', json={}).get_json() == {'theme': 'light'}


def test_logged_in_admin_skips_login_page(admin_client):
    response = admin_client.get('/admin/login')
    assert response.status_code == 302
    assert response.headers['Location'].endswith('/admin/')


def test_admin_panel_index_alias(admin_client):
    assert admin_client.get('/admin/index.html').status_code == 200


def test_nav_script_closes_menu_and_dropdowns(client):
    script = client.get('/static/js/site.js').get_data(as_text=True)
    assert 'window.addEventListener("resize"' in script
    assert 'window.innerWidth > 640' in script
    assert 'closeAllDropdowns();\n      if (!isOpen) dd.classList.add("open");' in script
