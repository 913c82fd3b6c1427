"""podhealth — once-a-minute health checks, runtime settings reload and session reaping."""

__version__ = "0.1.0"
