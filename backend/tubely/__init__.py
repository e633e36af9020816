"""
Tubely upload service backend package.

Accepts authenticated video and thumbnail uploads for existing video records,
probes and remuxes videos with ffprobe/ffmpeg, publishes the bytes to local
asset storage or S3, and records the resulting URL on the video record.
"""

__version__ = "1.0.0"
