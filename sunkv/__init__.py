"""RESP protocol codec and reactor-style TCP networking core for a key-value server."""

__version__ = "1.0.0"