"""
Services module for the Tubely backend application.

This package contains the business logic of the upload pipeline:

- video_service: video record lookup, ownership gate and URL commit
- upload_intake: size-bounded streaming multipart intake into staged files
- media_service: ffprobe aspect-ratio inspection and ffmpeg faststart remux
- storage_service: local thumbnail and S3 video publishers
- upload_service: the thumbnail and video upload pipelines

All services follow async patterns for non-blocking operations and are
designed for dependency injection through FastAPI's dependency system.
"""
