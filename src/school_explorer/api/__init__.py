"""HTTP API for the school explorer chat."""
