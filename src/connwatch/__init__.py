"""connwatch: observe and police the network connections of a child process."""

__version__ = "0.1.0"
