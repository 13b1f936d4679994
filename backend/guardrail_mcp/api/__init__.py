"""HTTP routers for the two network transports."""
