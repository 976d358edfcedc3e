"""HTTP surface (FastAPI) over the evidence pipeline."""
