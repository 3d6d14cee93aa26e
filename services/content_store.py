# services/content_store.py
"""
Firestore access for posts, pages, affiliate links, site singletons and subscribers

Stores take a Firestore client (real or test double) so the Flask
handlers and the Celery task share one data-access layer.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from google.cloud.firestore_v1 import FieldFilter, Query
from firebase_admin import firestore

from core.models import (
    POSTS, PAGES, AFFILIATE_LINKS, SITE, SUBSCRIBERS, PROFILE_DOC, EMAIL_DOC,
    Post, PostStatus, SitePage, AffiliateLink, Subscriber, utcnow,
)

logger = logging.getLogger(__name__)


class PostStore:
    def __init__(self, db):
        self.collection = db.collection(POSTS)

    def list_all(self) -> List[Post]:
        query = self.collection.order_by('updatedAt', direction=Query.DESCENDING)
        return [Post.from_document(doc.id, doc.to_dict() or {}) for doc in query.stream()]

    def get(self, post_id: str) -> Optional[Post]:
        # Firestore document ids cannot contain '/'
        if not post_id or '/' in post_id:
            return None
        snap = self.collection.document(post_id).get()
        if not snap.exists:
            return None
        return Post.from_document(snap.id, snap.to_dict() or {})

    def get_public(self, post_id: str, now: Optional[datetime] = None) -> Optional[Post]:
        post = self.get(post_id)
        if post is None or not post.is_public(now):
            return None
        return post

    def create(self, post: Post) -> str:
        ref = self.collection.document()
        data = post.to_document()
        data.update({
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        ref.set(data)
        logger.info(f"Post created: {ref.id} ({post.status.value})")
        return ref.id

    def update(self, post_id: str, post: Post) -> bool:
        ref = self.collection.document(post_id)
        if not ref.get().exists:
            return False
        data = post.to_document()
        data['updatedAt'] = firestore.SERVER_TIMESTAMP
        ref.set(data, merge=True)
        logger.info(f"Post updated: {post_id}")
        return True

    def delete(self, post_id: str) -> bool:
        ref = self.collection.document(post_id)
        if not ref.get().exists:
            return False
        ref.delete()
        logger.info(f"Post deleted: {post_id}")
        return True

    def published(self, now: Optional[datetime] = None, limit: int = 10) -> List[Post]:
        """Published posts whose publish time has passed, newest first"""
        now = now or utcnow()
        query = (
            self.collection
            .where(filter=FieldFilter('status', '==', PostStatus.PUBLISHED.value))
            .where(filter=FieldFilter('publishAt', '<=', now))
            .order_by('publishAt', direction=Query.DESCENDING)
            .limit(limit)
        )
        return [Post.from_document(doc.id, doc.to_dict() or {}) for doc in query.stream()]


class PageStore:
    def __init__(self, db):
        self.collection = db.collection(PAGES)

    def get(self, key: str) -> SitePage:
        snap = self.collection.document(key).get()
        if not snap.exists:
            return SitePage(key=key, title=key.title())
        return SitePage.from_document(key, snap.to_dict() or {})

    def save(self, page: SitePage) -> None:
        data = page.to_document()
        data['updatedAt'] = firestore.SERVER_TIMESTAMP
        self.collection.document(page.key).set(data, merge=True)
        logger.info(f"Page saved: {page.key}")


class AffiliateLinkStore:
    def __init__(self, db):
        self.collection = db.collection(AFFILIATE_LINKS)

    def list_all(self) -> List[AffiliateLink]:
        links = [AffiliateLink.from_document(doc.id, doc.to_dict() or {})
                 for doc in self.collection.stream()]
        return sorted(links, key=lambda link: (link.category, link.title.lower()))

    def grouped(self) -> Dict[str, List[AffiliateLink]]:
        groups: Dict[str, List[AffiliateLink]] = {}
        for link in self.list_all():
            groups.setdefault(link.category, []).append(link)
        return groups

    def get(self, link_id: str) -> Optional[AffiliateLink]:
        snap = self.collection.document(link_id).get()
        if not snap.exists:
            return None
        return AffiliateLink.from_document(snap.id, snap.to_dict() or {})

    def create(self, link: AffiliateLink) -> str:
        ref = self.collection.document()
        data = link.to_document()
        data.update({
            'createdAt': firestore.SERVER_TIMESTAMP,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        })
        ref.set(data)
        logger.info(f"Affiliate link created: {ref.id}")
        return ref.id

    def update(self, link_id: str, link: AffiliateLink) -> bool:
        ref = self.collection.document(link_id)
        if not ref.get().exists:
            return False
        data = link.to_document()
        data['updatedAt'] = firestore.SERVER_TIMESTAMP
        ref.set(data, merge=True)
        return True

    def delete(self, link_id: str) -> bool:
        ref = self.collection.document(link_id)
        if not ref.get().exists:
            return False
        ref.delete()
        logger.info(f"Affiliate link deleted: {link_id}")
        return True


class SiteStore:
    """site/profile and site/email singletons"""

    def __init__(self, db, security_manager=None):
        self.collection = db.collection(SITE)
        self.security_manager = security_manager

    def get_profile(self) -> Dict[str, Any]:
        snap = self.collection.document(PROFILE_DOC).get()
        data = (snap.to_dict() or {}) if snap.exists else {}
        return {'photoUrl': data.get('photoUrl'), 'storagePath': data.get('storagePath')}

    def set_profile_photo(self, photo_url: str, storage_path: str) -> None:
        self.collection.document(PROFILE_DOC).set({
            'photoUrl': photo_url,
            'storagePath': storage_path,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        }, merge=True)
        logger.info(f"Profile photo updated: {storage_path}")

    def get_refresh_token(self) -> Optional[str]:
        snap = self.collection.document(EMAIL_DOC).get()
        if not snap.exists:
            return None
        data = snap.to_dict() or {}
        token = data.get('refreshToken')
        if not token:
            return None
        if data.get('tokenEncrypted'):
            if self.security_manager is None:
                raise RuntimeError("Refresh token is encrypted but no security manager is configured")
            return self.security_manager.decrypt_sensitive_data(token)
        return token

    def save_refresh_token(self, refresh_token: str, **meta: Any) -> None:
        encrypted = self.security_manager is not None
        stored = (self.security_manager.encrypt_sensitive_data(refresh_token)
                  if encrypted else refresh_token)
        data = {
            'refreshToken': stored,
            'tokenEncrypted': encrypted,
            'updatedAt': firestore.SERVER_TIMESTAMP,
        }
        data.update(meta)
        self.collection.document(EMAIL_DOC).set(data, merge=True)
        logger.info(f"Refresh token saved (encrypted={encrypted})")


class SubscriberStore:
    def __init__(self, db):
        self.collection = db.collection(SUBSCRIBERS)

    def find_by_email(self, email: str) -> Optional[str]:
        query = self.collection.where(filter=FieldFilter('email', '==', email)).limit(1)
        for doc in query.stream():
            return doc.id
        return None

    def create(self, subscriber: Subscriber) -> str:
        ref = self.collection.document()
        data = subscriber.to_document()
        data['createdAt'] = firestore.SERVER_TIMESTAMP
        ref.set(data)
        logger.info(f"Subscriber created: {ref.id}")
        return ref.id

    def snapshot(self, subscriber_id: str):
        return self.collection.document(subscriber_id).get()

    @staticmethod
    def mark_welcome_sent(reference) -> None:
        reference.set({
            'welcomeSent': True,
            'welcomeSentAt': firestore.SERVER_TIMESTAMP,
        }, merge=True)
