"""
HTTP API package for the Tubely backend application.

Endpoints are grouped by version; v1 is mounted under the /api prefix.
"""
