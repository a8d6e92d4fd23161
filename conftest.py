import os

# Set test settings before any imports so the lazy engine and the encryption
# key derivation never see production defaults.
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")
os.environ.setdefault("APP_ENV", "test")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key")
os.environ.setdefault("APP_SECRET_KEY", "test-secret-key")
os.environ.setdefault("LOG_JSON", "false")

from sqlalchemy.orm import configure_mappers  # noqa: E402

# Import all models to register them with the mapper
from app.models.record import Expense, Income  # noqa: E402, F401
from app.models.attachment import Attachment  # noqa: E402, F401
from app.models.job import BulkImportJob  # noqa: E402, F401
from app.models.integration import UserDriveAuth  # noqa: E402, F401

# Configure all mappers so InstrumentedAttribute.impl is populated
configure_mappers()
