"""User Repository - Data access layer for user operations."""
from typing import Optional, Dict, Any
from werkzeug.security import check_password_hash

from core.base_repository import BaseRepository


class UserRepository(BaseRepository):
    """Repository for user data access operations."""

    def get_by_id(self, user_id: int) -> Optional[Dict[str, Any]]:
        return self.query_one('SELECT * FROM users WHERE id = %s', (user_id,))

    def get_by_email(self, email: str) -> Optional[Dict[str, Any]]:
        return self.query_one('SELECT * FROM users WHERE LOWER(email) = LOWER(%s)', (email,))

    def update_last_login(self, user_id: int) -> bool:
        return self.execute('''
            UPDATE users SET last_login = CURRENT_TIMESTAMP
            WHERE id = %s
        ''', (user_id,)) > 0

    def authenticate(self, email: str, password: str) -> Optional[Dict[str, Any]]:
        """Authenticate user by email and password."""
        user = self.get_by_email(email)
        if not user or not user.get('is_active', False) or not user.get('password_hash'):
            return None
        if not check_password_hash(user['password_hash'], password):
            return None
        return user
