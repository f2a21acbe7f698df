"""
Pydantic schemas for API request and response validation, and for the rows
persisted by the encounter pipeline.
"""
