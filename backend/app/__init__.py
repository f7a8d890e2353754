"""
Accord Backend Application Package

This package contains the FastAPI backend for the Accord project portfolio
manager, including:

- main.py: FastAPI application and router wiring
- workflow.py, allocation.py, critical_path.py, timeline.py: scheduling and
  planning rules shared by the services
- services/: org-scoped persistence and integrations (Resend, Canny, Supabase)
"""

__version__ = "1.0.0"
