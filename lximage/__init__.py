"""lximage: build LX-branded ZFS container images.

Turns a root-filesystem archive into the two artifacts an image server
imports:
  - ``<name>-<YYYYMMDD>.zfs.gz`` — gzip'd ``zfs send`` stream of the image
  - ``<name>-<YYYYMMDD>.json``   — IMGAPI manifest describing it

The build runs in an ephemeral dataset that is destroyed before exit.
"""

__version__ = "0.1.0"
__description__ = "Build LX-branded ZFS container images from root-filesystem archives"

from lximage.core.pipeline import ImageBuilder

__all__ = ["ImageBuilder", "__version__"]
