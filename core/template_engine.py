# core/template_engine.py
"""
Secure Template Engine for site content and transactional email

Two jobs share one set of bleach/Jinja2 settings:
- sanitizing the HTML that admins store in posts and pages
- rendering the welcome email (HTML + plain-text alternative)
"""

import os
import re
import logging
from typing import Dict, Optional, Any
from dataclasses import dataclass

from jinja2 import Environment, FileSystemLoader, select_autoescape, StrictUndefined
from jinja2.exceptions import TemplateError, UndefinedError, TemplateNotFound
import bleach
from bleach.css_sanitizer import CSSSanitizer
import premailer
from bs4 import BeautifulSoup
from markupsafe import Markup

logger = logging.getLogger(__name__)

EMAIL_TEMPLATE_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
                                  'templates', 'email')


@dataclass
class RenderedEmail:
    """Result of an email render"""
    subject: str
    html: str
    text: str


class SecureTemplateEngine:
    """
    bleach-backed sanitizer plus a Jinja2 environment for email bodies
    """

    SAFE_TAGS = [
        'p', 'br', 'strong', 'em', 'b', 'i', 'u', 's', 'sub', 'sup',
        'h1', 'h2', 'h3', 'h4', 'h5', 'h6',
        'ul', 'ol', 'li', 'dl', 'dt', 'dd',
        'a', 'img', 'figure', 'figcaption',
        'table', 'thead', 'tbody', 'tfoot', 'tr', 'td', 'th', 'caption',
        'div', 'span', 'section', 'article', 'header', 'footer',
        'hr', 'blockquote', 'pre', 'code', 'iframe',
    ]

    SAFE_ATTRIBUTES = {
        '*': ['class', 'id', 'style', 'title', 'dir', 'lang'],
        'a': ['href', 'title', 'rel', 'target'],
        'img': ['src', 'alt', 'width', 'height', 'loading'],
        'td': ['colspan', 'rowspan', 'align'],
        'th': ['colspan', 'rowspan', 'align'],
        'iframe': ['src', 'width', 'height', 'allow', 'allowfullscreen', 'frameborder'],
    }

    SAFE_PROTOCOLS = ['http', 'https', 'mailto']

    # Embeds are only kept for these hosts
    IFRAME_HOSTS = ('https://www.youtube.com/embed/', 'https://www.youtube-nocookie.com/embed/',
                    'https://player.vimeo.com/video/')

    def __init__(self,
                 enable_css_inlining: bool = True,
                 template_dir: Optional[str] = None,
                 max_content_size: int = 1024 * 1024):
        self.enable_css_inlining = enable_css_inlining
        self.max_content_size = max_content_size

        self.env = Environment(
            loader=FileSystemLoader(template_dir or EMAIL_TEMPLATE_DIR),
            autoescape=select_autoescape(['html', 'xml']),
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )

        self.css_sanitizer = CSSSanitizer(
            allowed_css_properties=[
                'color', 'background-color',
                'font-family', 'font-size', 'font-weight', 'font-style',
                'text-align', 'text-decoration',
                'margin', 'margin-top', 'margin-bottom', 'margin-left', 'margin-right',
                'padding', 'padding-top', 'padding-bottom', 'padding-left', 'padding-right',
                'border', 'border-radius', 'width', 'height', 'max-width',
                'line-height',
            ]
        )

        self.html_cleaner = bleach.Cleaner(
            tags=self.SAFE_TAGS,
            attributes=self._filter_attribute,
            protocols=self.SAFE_PROTOCOLS,
            css_sanitizer=self.css_sanitizer,
            strip=True,
            strip_comments=True,
        )

        logger.debug("SecureTemplateEngine initialized")

    def _filter_attribute(self, tag: str, name: str, value: str) -> bool:
        if tag == 'iframe' and name == 'src':
            return value.startswith(self.IFRAME_HOSTS)
        allowed = self.SAFE_ATTRIBUTES.get(tag, []) + self.SAFE_ATTRIBUTES['*']
        return name in allowed

    def sanitize_html(self, content: Optional[str]) -> str:
        """
        Strip disallowed tags, attributes, protocols and CSS from stored HTML
        """
        if not content:
            return ''
        if len(content.encode('utf-8')) > self.max_content_size:
            raise ValueError(f"Content size exceeds limit of {self.max_content_size} bytes")

        cleaned = self.html_cleaner.clean(content)
        return cleaned.strip()

    def excerpt(self, content: Optional[str], length: int = 180) -> str:
        """Plain-text excerpt of an HTML fragment"""
        text = self.html_to_text(content or '')
        text = re.sub(r'\s+', ' ', text).strip()
        if len(text) <= length:
            return text
        return text[:length].rsplit(' ', 1)[0].rstrip(',.;:') + '…'

    def render_email(self,
                     template_name: str,
                     subject: str,
                     variables: Dict[str, Any]) -> RenderedEmail:
        """
        Render an email template into HTML and plain-text bodies

        Args:
            template_name: File under templates/email/
            subject: Subject line (not templated)
            variables: Template variables; autoescaped by Jinja2

        Returns:
            RenderedEmail with both bodies
        """
        try:
            template = self.env.get_template(template_name)
            html_body = template.render(**variables)
        except (UndefinedError, TemplateNotFound) as e:
            raise TemplateError(f"Template variable error: {str(e)}")

        if self.enable_css_inlining:
            html_body = self._inline_css(html_body)

        text_body = self.html_to_text(html_body)
        logger.debug(f"Email template {template_name} rendered")

        return RenderedEmail(subject=subject, html=html_body, text=text_body)

    def _inline_css(self, html_content: str):
        """Inline <style> rules so mail clients keep the layout"""
        try:
            p = premailer.Premailer(
                html_content,
                remove_classes=False,
                keep_style_tags=False,
                strip_important=False,
                disable_validation=True,
            )
            return p.transform()
        except Exception as e:
            logger.warning(f"CSS inlining failed, sending without inlined styles: {str(e)}")
            return html_content

    def html_to_text(self, html_content: str) -> str:
        """
        Convert HTML to plain text with proper formatting for email
        """
        if not html_content:
            return ""

        soup = BeautifulSoup(html_content, 'html.parser')

        for tag in soup.find_all(['style', 'script', 'head']):
            tag.decompose()

        for br in soup.find_all('br'):
            br.replace_with('\n')

        for p in soup.find_all('p'):
            p.insert_after('\n\n')

        for header in soup.find_all(['h1', 'h2', 'h3', 'h4', 'h5', 'h6']):
            header.insert_before('\n')
            header.insert_after('\n')

        for li in soup.find_all('li'):
            li.insert_before('• ')
            li.insert_after('\n')

        for link in soup.find_all('a', href=True):
            link_text = link.get_text()
            href = link['href']
            if href != link_text:
                link.replace_with(f"{link_text} ({href})")

        text = soup.get_text()
        text = re.sub(r'[ \t]+', ' ', text)
        text = re.sub(r'\n\s*\n', '\n\n', text)
        return text.strip()


_default_engine: Optional[SecureTemplateEngine] = None


def get_template_engine() -> SecureTemplateEngine:
    """Process-wide engine with the standard settings"""
    global _default_engine
    if _default_engine is None:
        _default_engine = SecureTemplateEngine()
    return _default_engine


def sanitize_html(content: Optional[str]) -> str:
    return get_template_engine().sanitize_html(content)


def safe_html_filter(value: Any) -> Markup:
    """
    Jinja2 filter for stored rich text on public pages

    Content is cleaned again on the way out so documents written around
    the admin API still render only the allowed markup.
    """
    if value is None:
        return Markup('')
    return Markup(sanitize_html(str(value)))
