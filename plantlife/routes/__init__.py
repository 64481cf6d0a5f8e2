"""HTTP and push endpoints."""
