"""
Serving — FastAPI application for document submission and questions.

The HTTP layer only maps requests onto the job queue and the query
service; it owns no business logic.
"""
