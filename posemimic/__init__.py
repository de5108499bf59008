"""posemimic - drive a rigged 3D character from 2D pose keypoints"""

__version__ = "0.1.0"
