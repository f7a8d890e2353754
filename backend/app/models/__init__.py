"""
Accord API Models

Pydantic request schemas (``*_models.py``, ``notification.py``) and the
SQLAlchemy ORM models under ``db/``.
"""
