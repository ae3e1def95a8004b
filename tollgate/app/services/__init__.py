"""Services package for tollgate."""
