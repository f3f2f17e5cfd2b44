"""Backend API client and OAuth landing routes."""
