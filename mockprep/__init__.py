"""MockPrep backend service."""
