"""HTTP API for betledger."""
