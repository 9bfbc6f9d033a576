from .models import db

__all__ = ['db']
