"""Mock REST backend for local development and tests."""
