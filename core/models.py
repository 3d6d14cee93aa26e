# core/models.py
"""
Document models for the Firestore collections

Each model validates raw input (JSON body / form fields) and converts to
and from the camelCase document shape the browser scripts also read.
"""

import re
from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from email_validator import validate_email, EmailNotValidError

from core.template_engine import sanitize_html, get_template_engine


POSTS = 'posts'
PAGES = 'pages'
AFFILIATE_LINKS = 'affiliateLinks'
SITE = 'site'
SUBSCRIBERS = 'subscribers'

PROFILE_DOC = 'profile'
EMAIL_DOC = 'email'

PAGE_KEYS = ('about', 'upcoming', 'activities', 'newsletter')

TITLE_MAX_LENGTH = 200
SLUG_MAX_LENGTH = 120


class ValidationError(ValueError):
    """Raised when submitted data cannot be stored"""

    def __init__(self, fields: Dict[str, str]):
        self.fields = fields
        super().__init__('; '.join(f'{k}: {v}' for k, v in fields.items()))


class PostStatus(Enum):
    DRAFT = "draft"
    SCHEDULED = "scheduled"
    PUBLISHED = "published"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def slugify(value: str) -> str:
    value = (value or '').lower().strip()
    value = re.sub(r"['’]", '', value)
    value = re.sub(r'[^a-z0-9]+', '-', value)
    return value.strip('-')[:SLUG_MAX_LENGTH].strip('-')


def parse_tags(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = value.split(',')
    tags = []
    for tag in value:
        tag = str(tag).strip().lower()
        if tag and tag not in tags:
            tags.append(tag)
    return tags


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept datetimes, ISO-8601 strings and Firestore timestamps; always UTC-aware"""
    if value in (None, ''):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str):
        try:
            parsed = datetime.fromisoformat(value.strip().replace('Z', '+00:00'))
        except ValueError:
            raise ValidationError({'publishAt': 'Invalid date/time'})
    else:
        raise ValidationError({'publishAt': 'Invalid date/time'})
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def normalize_email(value: Any) -> str:
    return str(value or '').strip().lower()


def clean_content(value: Any, sanitize: Callable[[str], str] = sanitize_html) -> str:
    try:
        return sanitize(str(value or ''))
    except ValidationError:
        raise
    except ValueError as e:
        raise ValidationError({'content': str(e)}) from e


@dataclass
class Post:
    title: str
    slug: str
    status: PostStatus
    content: str = ''
    excerpt: str = ''
    tags: List[str] = field(default_factory=list)
    publish_at: Optional[datetime] = None
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_input(cls, data: Dict[str, Any],
                   sanitize: Callable[[str], str] = sanitize_html,
                   now: Optional[datetime] = None) -> 'Post':
        """Validate admin form input"""
        errors = {}
        title = str(data.get('title') or '').strip()
        if not title:
            errors['title'] = 'Title is required'
        elif len(title) > TITLE_MAX_LENGTH:
            errors['title'] = f'Title must be at most {TITLE_MAX_LENGTH} characters'

        slug = slugify(data.get('slug') or title)
        if title and not slug:
            errors['slug'] = 'Slug must contain letters or numbers'

        raw_status = str(data.get('status') or PostStatus.DRAFT.value).strip().lower()
        try:
            status = PostStatus(raw_status)
        except ValueError:
            errors['status'] = 'Status must be draft, scheduled or published'
            status = PostStatus.DRAFT

        try:
            publish_at = parse_timestamp(data.get('publishAt'))
        except ValidationError as e:
            errors.update(e.fields)
            publish_at = None

        if status is PostStatus.SCHEDULED and publish_at is None:
            errors['publishAt'] = 'Scheduled posts need a publish date'
        if status is PostStatus.PUBLISHED and publish_at is None:
            publish_at = now or utcnow()

        if errors:
            raise ValidationError(errors)

        content = clean_content(data.get('content'), sanitize)
        excerpt = str(data.get('excerpt') or '').strip() or get_template_engine().excerpt(content)

        return cls(
            title=title,
            slug=slug,
            status=status,
            content=content,
            excerpt=excerpt,
            tags=parse_tags(data.get('tags')),
            publish_at=publish_at,
        )

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'Post':
        try:
            status = PostStatus(data.get('status', 'draft'))
        except ValueError:
            status = PostStatus.DRAFT
        return cls(
            id=doc_id,
            title=data.get('title') or 'Untitled',
            slug=data.get('slug') or '',
            status=status,
            content=data.get('content') or '',
            excerpt=data.get('excerpt') or '',
            tags=list(data.get('tags') or []),
            publish_at=data.get('publishAt'),
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'slug': self.slug,
            'status': self.status.value,
            'content': self.content,
            'excerpt': self.excerpt,
            'tags': self.tags,
            'publishAt': self.publish_at,
        }

    def is_public(self, now: Optional[datetime] = None) -> bool:
        if self.status is not PostStatus.PUBLISHED or self.publish_at is None:
            return False
        return parse_timestamp(self.publish_at) <= (now or utcnow())

    def to_json(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'title': self.title,
            'slug': self.slug,
            'status': self.status.value,
            'content': self.content,
            'excerpt': self.excerpt,
            'tags': self.tags,
            'publishAt': _iso(self.publish_at),
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        }


@dataclass
class SitePage:
    key: str
    title: str = ''
    content: str = ''
    updated_at: Optional[datetime] = None

    @classmethod
    def from_input(cls, key: str, data: Dict[str, Any],
                   sanitize: Callable[[str], str] = sanitize_html) -> 'SitePage':
        key = (key or '').strip().lower()
        if key not in PAGE_KEYS:
            raise ValidationError({'key': f"Unknown page '{key}'"})
        title = str(data.get('title') or key.title()).strip()
        return cls(key=key, title=title, content=clean_content(data.get('content'), sanitize))

    @classmethod
    def from_document(cls, key: str, data: Dict[str, Any]) -> 'SitePage':
        return cls(
            key=key,
            title=data.get('title') or key.title(),
            content=data.get('content') or '',
            updated_at=data.get('updatedAt'),
        )

    def to_document(self) -> Dict[str, Any]:
        return {'key': self.key, 'title': self.title, 'content': self.content}

    def to_json(self) -> Dict[str, Any]:
        return {
            'key': self.key,
            'title': self.title,
            'content': self.content,
            'updatedAt': _iso(self.updated_at),
        }


@dataclass
class AffiliateLink:
    title: str
    url: str
    category: str = 'general'
    description: str = ''
    id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_input(cls, data: Dict[str, Any]) -> 'AffiliateLink':
        errors = {}
        title = str(data.get('title') or '').strip()
        url = str(data.get('url') or '').strip()
        if not title:
            errors['title'] = 'Title is required'
        if not url:
            errors['url'] = 'URL is required'
        else:
            parsed = urlparse(url)
            if parsed.scheme not in ('http', 'https') or not parsed.netloc:
                errors['url'] = 'URL must start with http:// or https://'
        if errors:
            raise ValidationError(errors)

        return cls(
            title=title,
            url=url,
            category=str(data.get('category') or 'general').strip().lower() or 'general',
            description=str(data.get('description') or '').strip(),
        )

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'AffiliateLink':
        return cls(
            id=doc_id,
            title=data.get('title') or '',
            url=data.get('url') or '',
            category=data.get('category') or 'general',
            description=data.get('description') or '',
            created_at=data.get('createdAt'),
            updated_at=data.get('updatedAt'),
        )

    def to_document(self) -> Dict[str, Any]:
        return {
            'title': self.title,
            'url': self.url,
            'category': self.category,
            'description': self.description,
        }

    def to_json(self) -> Dict[str, Any]:
        data = self.to_document()
        data.update({
            'id': self.id,
            'createdAt': _iso(self.created_at),
            'updatedAt': _iso(self.updated_at),
        })
        return data


@dataclass
class Subscriber:
    email: str
    welcome_sent: bool = False
    id: Optional[str] = None

    @classmethod
    def from_input(cls, data: Dict[str, Any], check_deliverability: bool = False) -> 'Subscriber':
        raw = normalize_email(data.get('email'))
        if not raw:
            raise ValidationError({'email': 'Email is required'})
        try:
            result = validate_email(raw, check_deliverability=check_deliverability)
        except EmailNotValidError as e:
            raise ValidationError({'email': str(e)})
        return cls(email=normalize_email(result.normalized))

    def to_document(self) -> Dict[str, Any]:
        return {'email': self.email, 'welcomeSent': self.welcome_sent}


def _iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)
