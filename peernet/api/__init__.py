"""
API Module - REST interface for a peernet node
"""

from .rest import create_app, run_api_server

__all__ = ['create_app', 'run_api_server']
