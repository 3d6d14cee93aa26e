from datetime import datetime, timezone

import pytest

from core.models import (
    AffiliateLink, Post, PostStatus, SitePage, Subscriber, ValidationError,
    parse_tags, parse_timestamp, slugify,
)


def test_slugify():
    assert slugify('  Hello, World! ') == 'hello-world'
    assert slugify('Faith & Family — Part 2') == 'faith-family-part-2'


def test_parse_tags_dedupes_and_lowercases():
    assert parse_tags('Faith, family ,faith,, ') == ['faith', 'family']
    assert parse_tags(['A', 'b', 'a']) == ['a', 'b']
    assert parse_tags(None) == []


def test_parse_timestamp_handles_zulu_and_naive():
    assert parse_timestamp('2026-02-01T10:00:00Z') == datetime(2026, 2, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp('2026-02-01T10:00') == datetime(2026, 2, 1, 10, tzinfo=timezone.utc)
    assert parse_timestamp('') is None
    with pytest.raises(ValidationError) as exc:
        parse_timestamp('next tuesday')
    assert exc.value.fields == {'publishAt': 'Invalid date/time'}


def test_post_requires_title():
    with pytest.raises(ValidationError) as exc:
        Post.from_input({'title': '   '})
    assert 'title' in exc.value.fields


def test_post_title_length_limit():
    with pytest.raises(ValidationError) as exc:
        Post.from_input({'title': 'x' * 201})
    assert 'title' in exc.value.fields


def test_post_rejects_unknown_status():
    with pytest.raises(ValidationError) as exc:
        Post.from_input({'title': 'Hello', 'status': 'archived'})
    assert 'status' in exc.value.fields


def test_scheduled_post_needs_publish_date():
    with pytest.raises(ValidationError) as exc:
        Post.from_input({'title': 'Soon', 'status': 'scheduled'})
    assert exc.value.fields == {'publishAt': 'Scheduled posts need a publish date'}


def test_published_post_defaults_publish_time(now):
    post = Post.from_input({'title': 'Now', 'status': 'published'}, now=now)
    assert post.status is PostStatus.PUBLISHED
    assert post.publish_at == now
    assert post.is_public(now)


def test_post_defaults_to_draft_and_is_not_public(now):
    post = Post.from_input({'title': 'Draft post', 'publishAt': '2020-01-01T00:00:00Z'})
    assert post.status is PostStatus.DRAFT
    assert post.slug == 'draft-post'
    assert not post.is_public(now)


def test_future_publish_time_is_not_public(now):
    post = Post.from_input({'title': 'Later', 'status': 'published',
                            'publishAt': '2099-01-01T00:00:00Z'})
    assert not post.is_public(now)


def test_post_content_is_sanitized_and_excerpted():
    post = Post.from_input({
        'title': 'Hello',
        'content': '<p onclick="steal()">Grace <b>and</b> peace</p><script>alert(1)</script>',
    })
    assert '<script>' not in post.content
    assert 'onclick' not in post.content
    assert '<b>and</b>' in post.content
    assert post.excerpt.startswith('Grace and peace')


def test_post_document_uses_camel_case(now):
    post = Post.from_input({'title': 'Hi', 'status': 'published', 'tags': 'a,b'}, now=now)
    doc = post.to_document()
    assert doc['publishAt'] == now
    assert doc['status'] == 'published'
    assert doc['tags'] == ['a', 'b']

    restored = Post.from_document('p1', doc)
    assert restored.id == 'p1'
    assert restored.to_json()['publishAt'] == now.isoformat()


def test_oversized_content_is_a_validation_error():
    content = 'a' * (1024 * 1024 + 1)
    with pytest.raises(ValidationError) as exc:
        Post.from_input({'title': 'Big', 'content': content})
    assert list(exc.value.fields) == ['content']
    with pytest.raises(ValidationError) as exc:
        SitePage.from_input('about', {'content': content})
    assert list(exc.value.fields) == ['content']


def test_post_from_document_defaults_title():
    assert Post.from_document('x', {}).title == 'Untitled'


def test_site_page_rejects_unknown_key():
    with pytest.raises(ValidationError):
        SitePage.from_input('secret', {'content': 'x'})


def test_site_page_defaults_title():
    page = SitePage.from_input('About', {'content': '<p>Hi</p>'})
    assert page.key == 'about'
    assert page.title == 'About'


def test_affiliate_link_validation():
    with pytest.raises(ValidationError) as exc:
        AffiliateLink.from_input({'title': '', 'url': 'javascript:alert(1)'})
    assert set(exc.value.fields) == {'title', 'url'}

    link = AffiliateLink.from_input({'title': 'Bible', 'url': 'https://amzn.to/x', 'category': ' Books '})
    assert link.category == 'books'
    assert AffiliateLink.from_input({'title': 'Mug', 'url': 'https://a.co/y'}).category == 'general'


def test_subscriber_normalizes_email():
    subscriber = Subscriber.from_input({'email': '  Reader@Example.COM '})
    assert subscriber.email == 'reader@example.com'
    assert subscriber.to_document() == {'email': 'reader@example.com', 'welcomeSent': False}


@pytest.mark.parametrize('email', ['', 'not-an-email', 'a@b'])
def test_subscriber_rejects_bad_email(email):
    with pytest.raises(ValidationError):
        Subscriber.from_input({'email': email})
