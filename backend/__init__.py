"""
Run Ingest Engine - Backend Service

FastAPI service that accepts test-run reports from CI systems, authenticates
them with project-scoped tokens, and stores each run exactly once.
"""

__version__ = "0.1.0"
