"""
Models: domain dataclasses (models.domain) and HTTP request/response
schemas (models.api).
"""
