"""
Pytest configuration for Django tests.
"""
import os

# Set the Django settings module
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "protex_wear.settings")
