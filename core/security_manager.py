# core/security_manager.py
"""
Security Manager for the site backend
Implements:
- Encryption of secrets stored in Firestore (Gmail refresh token)
- Admin identity verification through Firebase Auth ID tokens
- Audit logging of security-relevant events
"""

import base64
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, Optional
from dataclasses import dataclass, asdict

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from firebase_admin import auth as firebase_auth
from flask import has_request_context, request, session

logger = logging.getLogger(__name__)


class AuthenticationError(Exception):
    """Raised when an ID token is missing, invalid or not an admin"""


@dataclass
class SecurityAuditLog:
    """Security audit log entry"""
    timestamp: str
    event_type: str
    user_id: Optional[str]
    source_ip: str
    resource: str
    action: str
    details: Dict[str, Any]


class SecurityManager:
    """
    Encryption, admin verification and audit logging
    """

    def __init__(self,
                 encryption_key: str,
                 salt: str = 'bloominfive_site_salt',
                 admin_emails: Optional[Iterable[str]] = None,
                 verify_id_token: Optional[Callable[..., Dict[str, Any]]] = None):
        """
        Args:
            encryption_key: Master secret the Fernet key is derived from
            salt: KDF salt
            admin_emails: Allowed admin addresses; empty allows any verified user
            verify_id_token: Token verifier, defaults to firebase_admin.auth.verify_id_token
        """
        self.cipher = self._build_cipher(encryption_key, salt)
        self.admin_emails = {e.strip().lower() for e in (admin_emails or []) if e.strip()}
        self._verify_id_token = verify_id_token or firebase_auth.verify_id_token
        logger.info("SecurityManager initialized")

    @staticmethod
    def _build_cipher(master_key: str, salt: str) -> Fernet:
        """Derive a Fernet key from the configured master key"""
        if not master_key:
            raise ValueError("ENCRYPTION_KEY must be configured")
        kdf = PBKDF2HMAC(
            algorithm=hashes.SHA256(),
            length=32,
            salt=salt.encode(),
            iterations=100000,
        )
        key = base64.urlsafe_b64encode(kdf.derive(master_key.encode()))
        return Fernet(key)

    def encrypt_sensitive_data(self, data: str) -> str:
        """
        Encrypt sensitive data with authenticated encryption

        Returns:
            URL-safe token text suitable for a Firestore string field
        """
        if not isinstance(data, str):
            data = str(data)
        return self.cipher.encrypt(data.encode('utf-8')).decode('ascii')

    def decrypt_sensitive_data(self, encrypted_data: str) -> str:
        """
        Decrypt data produced by encrypt_sensitive_data

        Raises:
            ValueError: when the token was tampered with or the key changed
        """
        try:
            return self.cipher.decrypt(encrypted_data.encode('ascii')).decode('utf-8')
        except InvalidToken:
            logger.error("Decryption failed: invalid token or wrong ENCRYPTION_KEY")
            raise ValueError("Stored secret could not be decrypted")

    def verify_admin_token(self, id_token: str) -> Dict[str, Any]:
        """
        Verify a Firebase Auth ID token and check the admin allow-list

        Returns:
            Decoded token claims
        """
        if not id_token:
            raise AuthenticationError('ID token required')

        try:
            claims = self._verify_id_token(id_token)
        except (ValueError, firebase_auth.InvalidIdTokenError,
                firebase_auth.ExpiredIdTokenError, firebase_auth.RevokedIdTokenError) as e:
            raise AuthenticationError(f'Invalid ID token: {e}')

        email = (claims.get('email') or '').lower()
        if self.admin_emails and email not in self.admin_emails:
            raise AuthenticationError('Account is not an administrator')
        return claims

    def log_security_event(self, event_type: str, details: Optional[Dict[str, Any]] = None):
        """
        Log security event for audit trail
        """
        in_request = has_request_context()
        entry = SecurityAuditLog(
            timestamp=datetime.now(timezone.utc).isoformat(),
            event_type=event_type,
            user_id=session.get('user_id') if in_request else None,
            source_ip=(request.remote_addr or 'unknown') if in_request else 'system',
            resource=(request.endpoint or request.path) if in_request else 'system',
            action=request.method if in_request else 'system',
            details=details or {},
        )
        logger.info(f"Security event: {event_type}", extra={'audit': asdict(entry)})


def init_security_manager(app, verify_id_token=None) -> SecurityManager:
    """Create the app's security manager and attach it as app.security_manager"""
    security_manager = SecurityManager(
        encryption_key=app.config['ENCRYPTION_KEY'],
        salt=app.config.get('ENCRYPTION_SALT', 'bloominfive_site_salt'),
        admin_emails=app.config.get('ADMIN_EMAILS'),
        verify_id_token=verify_id_token,
    )
    app.security_manager = security_manager
    return security_manager
