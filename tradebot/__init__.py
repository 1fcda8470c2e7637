"""Custodial swap service for Base: chat bot, HTTP API and trade-execution core."""

__version__ = "0.1.0"
