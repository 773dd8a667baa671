"""
Pytest configuration shared by every test module.
Uses in-memory SQLite database for fast, isolated tests.
"""
import os

# Set testing environment before importing app
os.environ["TESTING"] = "True"
os.environ["DEBUG"] = "False"
os.environ["NOTIFICATIONS_ASYNC"] = "False"
os.environ.setdefault("JWT_SECRET", "test-secret")
