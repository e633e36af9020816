"""
Pydantic data models for the Tubely backend application.
"""

from tubely.models.video import AspectBucket, AssetKind, VideoRecord


__all__ = ["AspectBucket", "AssetKind", "VideoRecord"]
