"""Query clients, transaction broadcasting helpers and deployment state for Cosmos SDK chains."""

__version__ = "0.1.0"