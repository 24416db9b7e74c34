from .user import User, UserRole
from .worker import Worker

__all__ = ['User', 'UserRole', 'Worker']
