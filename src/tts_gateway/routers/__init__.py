"""HTTP routers exposed by the gateway."""
