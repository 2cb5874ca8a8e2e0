"""CLI entrypoints for the filesystem connector."""

from fsconnector.cli.config import app as config_app
from fsconnector.cli.upload import app as upload_app

__all__ = ["config_app", "upload_app"]
