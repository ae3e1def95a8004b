"""HTTP API routers for tollgate."""
