"""User model for Flask-Login authentication."""
from flask_login import UserMixin


class User(UserMixin):
    """User class for Flask-Login."""

    def __init__(self, user_data):
        self.id = user_data['id']
        self.email = user_data['email']
        self.name = user_data.get('name') or user_data['email']
        self.role = user_data.get('role', 'sales')
        self.is_active_user = user_data.get('is_active', True)
        self.can_access_crm = user_data.get('can_access_crm', False)

    @property
    def is_active(self):
        return self.is_active_user

    @property
    def is_admin(self):
        return self.role == 'admin'

    def to_dict(self):
        return {
            'id': self.id,
            'name': self.name,
            'email': self.email,
            'role': self.role,
            'is_active': self.is_active,
            'is_admin': self.is_admin,
            'can_access_crm': self.can_access_crm,
        }
