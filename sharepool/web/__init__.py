"""HTTP plumbing shared by the routers: session dependency and error handlers."""
