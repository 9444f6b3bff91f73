"""HTTP facade over the kalends engine (FastAPI)."""
