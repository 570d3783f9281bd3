"""HTTP API for the grid front-end."""
