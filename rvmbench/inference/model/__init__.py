# inference/model/__init__.py

"""
Backend runtime package.
Provides the backend factory and backend implementations.
"""

from .factory import make_backend
