"""relayd: a line-oriented multi-client chat relay."""

__version__ = "0.1.0"
