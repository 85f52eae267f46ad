"""
Shared pytest fixtures.

Provides:
- Settings pointing at a throwaway SQLite database
- An in-memory blob store standing in for S3
- A running application (lifespan included) and bearer-token helpers
- Owner-scoped stores for direct metadata/audit tests
"""
import base64
import json

import pytest
from fastapi.testclient import TestClient

from filebroker.core.config import Settings
from filebroker.core.database import DatabaseManager
from filebroker.features.audit.ledger import AuditLedger
from filebroker.features.files.store import FileMetadataStore
from filebroker.main import create_app


OWNER_A = "owner-alice"
OWNER_B = "owner-bob"


# ============================================================================
# Helpers
# ============================================================================

def _segment(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def make_token(claims: dict) -> str:
    """Unsigned-looking JWT: header.payload.signature."""
    header = _segment(json.dumps({"alg": "RS256", "typ": "JWT"}).encode())
    payload = _segment(json.dumps(claims).encode())
    return f"{header}.{payload}.{_segment(b'signature')}"


def auth_headers(owner_id: str) -> dict:
    return {"Authorization": f"Bearer {make_token({'sub': owner_id})}"}


class FakeBlobStore:
    """In-memory stand-in for the S3 collaborator."""

    configured = True

    def __init__(self):
        self.puts = []
        self.gets = []
        self.deleted = []
        self.fail_presign = False
        self.fail_delete = False

    async def presign_put(self, key, content_type, content_length, ttl):
        if self.fail_presign:
            raise RuntimeError("signing service unavailable")
        self.puts.append((key, content_type, content_length, ttl))
        return f"https://storage.example.com/{key}?X-Amz-Signature=put"

    async def presign_get(self, key, disposition_filename, ttl):
        if self.fail_presign:
            raise RuntimeError("signing service unavailable")
        self.gets.append((key, disposition_filename, ttl))
        return f"https://storage.example.com/{key}?X-Amz-Signature=get"

    async def delete(self, key):
        if self.fail_delete:
            return False
        self.deleted.append(key)
        return True


# ============================================================================
# Configuration & application
# ============================================================================

@pytest.fixture
def settings(tmp_path):
    return Settings(
        _env_file=None,
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'filebroker.db'}",
        redis_url=None,
        endpoint_url="https://storage.example.com",
        aws_access_key_id="test-access-key",
        aws_secret_access_key="test-secret-key",
        bucket_name="test-bucket",
        run_migrations_on_startup=False,
    )


@pytest.fixture
def blob_store():
    return FakeBlobStore()


@pytest.fixture
def app(settings, blob_store):
    return create_app(settings, blob_store=blob_store)


@pytest.fixture
def client(app):
    """TestClient with lifespan started and tables created."""
    with TestClient(app) as test_client:
        test_client.portal.call(app.state.db_manager.create_tables)
        yield test_client


# ============================================================================
# Direct store access
# ============================================================================

@pytest.fixture
async def db_manager(settings):
    manager = DatabaseManager(settings)
    await manager.create_tables()
    yield manager
    await manager.close()


@pytest.fixture
async def session(db_manager):
    async with db_manager.async_session() as db_session:
        yield db_session


@pytest.fixture
def store_a(session, settings):
    return FileMetadataStore(session, OWNER_A, settings)


@pytest.fixture
def store_b(session, settings):
    return FileMetadataStore(session, OWNER_B, settings)


@pytest.fixture
def ledger_a(session):
    return AuditLedger(session, OWNER_A)


@pytest.fixture
def ledger_b(session):
    return AuditLedger(session, OWNER_B)
