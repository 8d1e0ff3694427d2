"""HTTP API for the depository."""
