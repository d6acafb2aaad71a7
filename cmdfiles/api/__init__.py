"""
API Module - REST API for the file store
"""

from .rest import create_app, run_api_server

__all__ = ['create_app', 'run_api_server']
