"""
FastAPI routers for all API endpoints.

- health: public status check
- encounter: authenticated recommendation endpoints
"""
