# services/navigation.py
"""
Navigation partial: relative link wiring and the recent-posts dropdown
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional

logger = logging.getLogger(__name__)

NESTED_SECTIONS = ('/blog/', '/admin/', '/pages/')

NAV_LINKS = {
    'about': 'pages/about.html',
    'upcoming': 'pages/upcoming.html',
    'activities': 'pages/activities.html',
    'newsletter': 'pages/newsletter.html',
    'amazon': 'pages/affiliate.html',
    'blogIndex': 'blog/index.html',
}


@dataclass
class NavTitle:
    id: str
    title: str
    href: str


@dataclass
class NavState:
    base: str
    links: Dict[str, str]
    titles: List[NavTitle]
    message: Optional[str] = None


def base_path(path: str) -> str:
    """Relative prefix that reaches the site root from the given request path"""
    if any(section in (path or '') for section in NESTED_SECTIONS):
        return '../'
    return './'


def link_map(base: str) -> Dict[str, str]:
    links = {key: base + target for key, target in NAV_LINKS.items()}
    links['home'] = base + 'index.html'
    return links


def recent_post_titles(post_store, base: str, now: Optional[datetime] = None,
                       limit: int = 10) -> List[NavTitle]:
    posts = post_store.published(now=now, limit=limit)
    return [
        NavTitle(
            id=post.id,
            title=post.title or 'Untitled',
            href=f"{base}blog/post.html?id={post.id}",
        )
        for post in posts
    ]


def build_nav(path: str, post_store, now: Optional[datetime] = None, limit: int = 10) -> NavState:
    """
    Everything the nav partial needs for one request path

    A failing title query never breaks the page; it is reported through
    ``message`` the same way an empty result is.
    """
    base = base_path(path)
    state = NavState(base=base, links=link_map(base), titles=[])
    try:
        state.titles = recent_post_titles(post_store, base, now=now, limit=limit)
    except Exception as e:
        logger.warning(f"Blog titles failed to load: {e}", exc_info=True)
        state.message = 'Couldn’t load posts.'
        return state

    if not state.titles:
        state.message = 'No posts yet.'
    return state
