"""Business logic shared by the API routes."""
