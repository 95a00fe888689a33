"""Services used around the orchestrator: usage accounting and result delivery."""
