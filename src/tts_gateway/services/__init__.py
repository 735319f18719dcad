"""Service layer shared by the HTTP routers and the terminal client."""
