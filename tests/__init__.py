"""
CCCD Parser Tests

Unit tests for the pipeline stages and route tests for the HTTP API.
"""
