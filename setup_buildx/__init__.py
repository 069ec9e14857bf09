"""setup-buildx: provision and tear down a Docker Buildx builder in CI."""

__version__ = "1.0.0"
