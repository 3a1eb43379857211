"""AG-UI run server: turns one conversational turn into an ordered event stream."""

__version__ = "0.1.0"
