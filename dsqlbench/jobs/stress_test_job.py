"""
Stress test job: parallel user inserts in sequential batches.

Batch N+1 starts only after every task of batch N has finished. Inside a
batch all inserts run concurrently on the shared pool, and a failing insert
never cancels its siblings.
"""

import asyncio
import time
import uuid
from dataclasses import dataclass
from uuid import UUID

import structlog

from dsqlbench.infrastructure.observability.logging import get_logger
from dsqlbench.repositories.user_repository import UserRepository

logger = get_logger(__name__)

ROLES = ["User", "Admin", "Manager", "Guest", "Developer"]

FIRST_NAMES = [
    "Aelfric", "Aldwin", "Baldwin", "Cedric", "Edmund", "Godfrey", "Harold", "Leofric",
    "Oswald", "Wilfrid", "Adelina", "Beatrice", "Cecily", "Eleanor", "Guinevere", "Isolde",
    "Matilda", "Rohesia", "Sybil", "Yvonne", "William", "Richard", "Robert", "Hugh", "Roland",
    "Giles", "Walter", "Henry", "Thomas", "John", "Agnes", "Alice", "Elaine", "Emma", "Joan",
    "Margaret", "Marian", "Edith", "Godiva", "Maud",
]

LAST_NAMES = [
    "Montague", "Capulet", "Othello", "Hamlet", "Macbeth", "Lear", "Prospero", "Oberon",
    "Puck", "Lysander", "Demetrius", "Titania", "Portia", "Shylock", "Malvolio", "Orsino",
    "Orlando", "Rosalind", "Falstaff", "Petruchio", "Ariel", "Caliban", "Polonius", "Laertes",
    "Ophelia", "Macduff", "Banquo", "Desdemona", "Cordelia", "Goneril", "Regan", "Kent",
    "Gloucester", "Albany", "Cornwall", "Feste", "Viola", "Sebastian", "Antonio", "Benvolio",
    "Mercutio", "Tybalt", "Horatio", "Fortinbras", "Bottom",
]

EMAIL_DOMAIN = "kingdommail.com"


@dataclass(frozen=True)
class SyntheticUser:
    user_id: UUID
    name: str
    email: str
    role: str


def synthetic_user(index: int) -> SyntheticUser:
    """
    Build the test user for a unit index.

    Name and role depend only on the index; the id is a fresh uuid4 and is
    folded into the email so repeated runs do not collide.
    """
    first_name = FIRST_NAMES[index % len(FIRST_NAMES)]
    last_name = LAST_NAMES[(index * 7) % len(LAST_NAMES)]
    user_id = uuid.uuid4()

    return SyntheticUser(
        user_id=user_id,
        name=f"{first_name} {last_name}",
        email=f"{first_name.lower()}.{last_name.lower()}.{user_id.hex}@{EMAIL_DOMAIN}",
        role=ROLES[index % len(ROLES)],
    )


def plan_batches(total_units: int, concurrency: int) -> list[range]:
    """Split unit indices into consecutive batches of at most ``concurrency``."""
    if total_units < 0:
        raise ValueError(f"total_units must be >= 0, got {total_units}")
    if concurrency < 1:
        raise ValueError(f"concurrency must be >= 1, got {concurrency}")

    return [
        range(start, min(start + concurrency, total_units))
        for start in range(0, total_units, concurrency)
    ]


class StressRun:
    """Outcome counters for one harness invocation."""

    def __init__(self):
        self.attempted = 0
        self.succeeded = 0
        self.failed = 0
        self.elapsed_seconds = 0.0
        self.batch_sizes: list[int] = []
        self.errors: list[dict] = []

    def record_success(self, index: int, user: SyntheticUser):
        self.attempted += 1
        self.succeeded += 1

        logger.debug(
            "Successfully inserted user",
            unit=index + 1,
            name=user.name,
            user_id=str(user.user_id),
        )

    def record_failure(self, index: int, user: SyntheticUser, error: BaseException):
        self.attempted += 1
        self.failed += 1

        self.errors.append(
            {
                "unit": index + 1,
                "email": user.email,
                "error": str(error),
                "error_type": type(error).__name__,
            }
        )

        logger.warning(
            "Failed to insert user",
            unit=index + 1,
            name=user.name,
            error=str(error),
            error_type=type(error).__name__,
        )

    @property
    def throughput(self) -> float:
        """Successful inserts per second."""
        if self.elapsed_seconds <= 0:
            return 0.0
        return self.succeeded / self.elapsed_seconds

    def to_dict(self) -> dict:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "batches": len(self.batch_sizes),
            "elapsed_seconds": round(self.elapsed_seconds, 2),
            "inserts_per_second": round(self.throughput, 2),
            "errors_count": len(self.errors),
        }


class StressRunAborted(Exception):
    """A batch produced no successful insert and the caller asked to stop."""

    def __init__(self, batch_number: int, run: StressRun):
        super().__init__(f"Every insert in batch {batch_number} failed, aborting stress test")
        self.batch_number = batch_number
        self.run = run


class StressHarness:
    """
    Drives concurrent insert_user calls against one repository.

    The semaphore caps in-flight inserts at ``concurrency``; batch joins keep
    any task from crossing into the next batch.
    """

    def __init__(self, repository: UserRepository, user_factory=synthetic_user):
        self.repository = repository
        self.user_factory = user_factory

    async def run(
        self, total_units: int, concurrency: int, *, abort_on_failed_batch: bool = False
    ) -> StressRun:
        """
        Insert ``total_units`` synthetic users, ``concurrency`` at a time.

        Args:
            total_units: Number of users to insert
            concurrency: Batch size and in-flight limit
            abort_on_failed_batch: Stop after a batch in which every insert failed

        Returns:
            StressRun: Counters and timing for the run

        Raises:
            StressRunAborted: abort_on_failed_batch was set and a batch fully failed
        """
        batches = plan_batches(total_units, concurrency)
        semaphore = asyncio.Semaphore(concurrency)
        run = StressRun()

        logger.info(
            "Starting stress test",
            total_units=total_units,
            concurrency=concurrency,
            batch_count=len(batches),
        )

        start_time = time.perf_counter()
        try:
            with structlog.contextvars.bound_contextvars(stress_run=uuid.uuid4().hex[:8]):
                for batch_number, batch in enumerate(batches, 1):
                    logger.info(
                        "Processing batch",
                        batch_number=batch_number,
                        first_unit=batch.start + 1,
                        last_unit=batch.stop,
                    )

                    succeeded = await self._run_batch(batch, semaphore, run)

                    if abort_on_failed_batch and succeeded == 0:
                        raise StressRunAborted(batch_number, run)
        finally:
            run.elapsed_seconds = time.perf_counter() - start_time

        return run

    async def _run_batch(self, batch: range, semaphore: asyncio.Semaphore, run: StressRun) -> int:
        """Run one batch to completion and return how many inserts succeeded."""
        users = [(index, self.user_factory(index)) for index in batch]

        tasks = [
            asyncio.create_task(self._insert_with_semaphore(semaphore, user)) for _, user in users
        ]

        # Wait for all inserts in this batch to complete
        results = await asyncio.gather(*tasks, return_exceptions=True)

        run.batch_sizes.append(len(batch))
        succeeded = 0
        for (index, user), result in zip(users, results):
            if isinstance(result, BaseException):
                run.record_failure(index, user, result)
            else:
                run.record_success(index, user)
                succeeded += 1

        return succeeded

    async def _insert_with_semaphore(self, semaphore: asyncio.Semaphore, user: SyntheticUser):
        async with semaphore:
            await self.repository.insert_user(user.user_id, user.name, user.email, user.role)
