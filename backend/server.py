# server.py - uvicorn entry point
# All code lives in the storefront/ package

from storefront.main import app

# Re-export app for uvicorn
__all__ = ['app']
