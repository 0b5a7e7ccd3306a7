# =============================================================================
# Database Package
# =============================================================================
# Async SQLAlchemy engine construction, ORM models and the owner-scoped store.
#
# Key exports:
#   - create_engine_for / create_session_factory / init_models (engine.py)
#   - Base, Document, DocumentText, Analysis, QASession, ChatMessage, ApiKey
#   - DocumentStore: the only way services read or write owned records
# =============================================================================
