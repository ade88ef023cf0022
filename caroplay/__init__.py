"""Networked Caro (five-in-a-row) game: board rules, text protocol, file storage, server and client."""

__version__ = "0.1.0"