"""HTTP surface: webhook and health routes, middleware and controllers."""
