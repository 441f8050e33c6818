"""Services: orchestration, state accumulation, analytics and reports."""
