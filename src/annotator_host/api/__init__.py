"""HTTP-facing helpers: authentication, content types and persistence."""
