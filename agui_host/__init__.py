"""AG-UI agent host: streaming protocol translator and resumable client state."""

__version__ = "0.1.0"
