from datetime import UTC, datetime

import pytest

from dsqlbench.db.retry import RetryPolicy


class FakeDatabase:
    """In-memory stand-in for dsqlbench.db.helpers.Database."""

    def __init__(self):
        self.rows: list[dict] = []
        self.table_exists = False
        self.statements: list[str] = []
        self.failures: list[Exception] = []

    def fail_next(self, *errors: Exception) -> None:
        """Queue errors raised by the next calls, one per call."""
        self.failures.extend(errors)

    def count(self, prefix: str) -> int:
        return sum(1 for statement in self.statements if statement.startswith(prefix))

    def _record(self, query: str) -> str:
        statement = " ".join(query.split())
        self.statements.append(statement)
        if self.failures:
            raise self.failures.pop(0)
        return statement

    async def execute(self, query: str, params: tuple = ()) -> int:
        statement = self._record(query)

        if statement.startswith("DROP TABLE"):
            self.table_exists = False
            self.rows = []
            return 0

        if statement.startswith("CREATE TABLE"):
            self.table_exists = True
            return 0

        if statement.startswith("INSERT INTO users"):
            user_id, name, email, role = params
            if any(row["email"] == email for row in self.rows):
                return 0
            self.rows.append(
                {
                    "id": user_id,
                    "name": name,
                    "email": email,
                    "role": role,
                    "created_at": datetime.now(UTC),
                }
            )
            return 1

        raise AssertionError(f"Unexpected statement: {statement}")

    async def fetch_all(self, query: str, params: tuple = ()) -> list[dict]:
        self._record(query)
        return [dict(row) for row in self.rows]

    async def fetch_val(self, query: str, params: tuple = ()):
        self._record(query)
        return self.table_exists


class FakeSigner:
    """Records which signing variant was called."""

    def __init__(self, admin_error: Exception | None = None, token: str = None):
        self.calls: list[tuple[str, str, str]] = []
        self.admin_error = admin_error
        self.token = token

    def generate_db_connect_auth_token(self, Hostname: str, Region: str) -> str:
        self.calls.append(("standard", Hostname, Region))
        return self.token if self.token is not None else f"standard-token-for-{Hostname}"

    def generate_db_connect_admin_auth_token(self, Hostname: str, Region: str) -> str:
        self.calls.append(("admin", Hostname, Region))
        if self.admin_error:
            raise self.admin_error
        return self.token if self.token is not None else f"admin-token-for-{Hostname}"


@pytest.fixture
def fake_db():
    return FakeDatabase()


@pytest.fixture
def fake_signer():
    return FakeSigner()


@pytest.fixture
def make_signer():
    return FakeSigner


@pytest.fixture
def fast_policy():
    return RetryPolicy(max_attempts=3, backoff=0)


@pytest.fixture
def endpoint():
    return "abcdefghijklmnop.dsql.us-east-1.on.aws"
