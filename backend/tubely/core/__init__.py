"""
Core infrastructure for the Tubely backend application.

This package contains the foundational components used by the upload
pipeline:
- auth: bearer credential extraction and HS256 JWT validation
- database: MongoDB async client with Motor driver and connection pooling
- exceptions: error taxonomy with HTTP status and public message per error
- storage: boto3 S3 client used to publish videos
"""
