"""FastAPI server for the Nova backend."""
