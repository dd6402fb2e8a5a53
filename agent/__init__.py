"""Computer-use agent loop and its helpers (safety, redaction, display)."""
