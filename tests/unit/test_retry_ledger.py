"""Tests for the retry ledger."""

import json

import pytest

from specpilot.engine.retry_ledger import FileRetryLedger, InMemoryRetryLedger, RetryState
from specpilot.exceptions import RetryExhaustedError, WorkflowError

# =============================================================================
# RetryState
# =============================================================================


class TestRetryState:
    """Test the counter arithmetic of RetryState."""

    def test_increment_until_max(self):
        """Test increment stops at the maximum without exceeding it."""
        state = RetryState(scope="001-login", stage="plan", max_retries=2)

        state.increment()
        state.increment()
        assert state.count == 2
        assert not state.can_retry()

        with pytest.raises(RetryExhaustedError) as exc_info:
            state.increment()

        assert state.count == 2
        assert "001-login:plan" in str(exc_info.value)
        assert "2/2" in str(exc_info.value)
        assert exc_info.value.exit_code == 2

    def test_reset_clears_count_and_timestamp(self):
        """Test reset zeroes the count and the last attempt."""
        state = RetryState(scope="001-login", stage="plan", max_retries=3)
        state.increment()
        assert state.last_attempt is not None

        state.reset()

        assert state.count == 0
        assert state.last_attempt is None
        assert state.can_retry()

    def test_zero_max_exhausts_immediately(self):
        """Test a maximum of zero allows no retries."""
        state = RetryState(scope="s", stage="tasks", max_retries=0)

        assert not state.can_retry()
        with pytest.raises(RetryExhaustedError):
            state.increment()
        assert state.count == 0


# =============================================================================
# FileRetryLedger
# =============================================================================


class TestFileRetryLedger:
    """Test the JSON file ledger."""

    @pytest.mark.asyncio
    async def test_load_missing_returns_zero(self, tmp_path):
        """Test loading an unknown key yields a fresh state."""
        ledger = FileRetryLedger(tmp_path)

        state = await ledger.load("001-login", "plan", max_retries=3)

        assert state.count == 0
        assert state.max_retries == 3
        assert state.scope == "001-login"
        assert state.stage == "plan"

    @pytest.mark.asyncio
    async def test_survives_new_instance(self, tmp_path):
        """Test state persists across ledger instances (process restart)."""
        ledger = FileRetryLedger(tmp_path)
        state = await ledger.load("001-login", "implement:task-T001", max_retries=3)
        state.increment()
        await ledger.save(state)

        reloaded = await FileRetryLedger(tmp_path).load("001-login", "implement:task-T001", max_retries=3)

        assert reloaded.count == 1
        assert reloaded.last_attempt == state.last_attempt

    @pytest.mark.asyncio
    async def test_record_format(self, tmp_path):
        """Test each record is a standalone JSON document with the key fields."""
        ledger = FileRetryLedger(tmp_path)
        await ledger.save(RetryState(scope="001-login", stage="plan", count=1, max_retries=2))

        files = list((tmp_path / "retry").glob("*.json"))
        assert len(files) == 1
        data = json.loads(files[0].read_text())
        assert data["scope"] == "001-login"
        assert data["stage"] == "plan"
        assert data["count"] == 1
        assert data["max_retries"] == 2
        assert not list((tmp_path / "retry").glob("*.tmp"))

    @pytest.mark.asyncio
    async def test_save_is_idempotent(self, tmp_path):
        """Test saving the same state twice leaves one identical record."""
        ledger = FileRetryLedger(tmp_path)
        state = RetryState(scope="001-login", stage="plan", count=1, max_retries=2)

        await ledger.save(state)
        await ledger.save(state)

        loaded = await ledger.load("001-login", "plan", max_retries=2)
        assert loaded == state
        assert len(list((tmp_path / "retry").glob("*.json"))) == 1

    @pytest.mark.asyncio
    async def test_reset(self, tmp_path):
        """Test reset removes a record and tolerates unknown keys."""
        ledger = FileRetryLedger(tmp_path)
        await ledger.save(RetryState(scope="001-login", stage="plan", count=2, max_retries=3))

        await ledger.reset("001-login", "plan")
        await ledger.reset("001-login", "never-saved")

        state = await ledger.load("001-login", "plan", max_retries=3)
        assert state.count == 0

    @pytest.mark.asyncio
    async def test_keys_are_independent(self, tmp_path):
        """Test scopes and stages do not share records."""
        ledger = FileRetryLedger(tmp_path)
        await ledger.save(RetryState(scope="001-login", stage="plan", count=1, max_retries=3))
        await ledger.save(RetryState(scope="002-search", stage="plan", count=3, max_retries=3))

        assert (await ledger.load("001-login", "plan", 3)).count == 1
        assert (await ledger.load("002-search", "plan", 3)).count == 3
        assert (await ledger.load("001-login", "tasks", 3)).count == 0

    @pytest.mark.asyncio
    async def test_handles_empty_scope_and_special_characters(self, tmp_path):
        """Test identifiers that are not file-name safe still round trip."""
        ledger = FileRetryLedger(tmp_path)
        await ledger.save(RetryState(scope="", stage="specify", count=1, max_retries=2))
        await ledger.save(RetryState(scope="a/b", stage="implement:phase-1", count=2, max_retries=2))

        assert (await ledger.load("", "specify", 2)).count == 1
        assert (await ledger.load("a/b", "implement:phase-1", 2)).count == 2

    @pytest.mark.asyncio
    async def test_load_adopts_lower_max(self, tmp_path):
        """Test a lowered maximum is adopted and the count clamped to it."""
        ledger = FileRetryLedger(tmp_path)
        await ledger.save(RetryState(scope="001-login", stage="plan", count=3, max_retries=5))

        state = await ledger.load("001-login", "plan", max_retries=2)

        assert state.max_retries == 2
        assert state.count == 2

    @pytest.mark.asyncio
    async def test_list_states(self, tmp_path):
        """Test listing returns only the requested scope, sorted by stage."""
        ledger = FileRetryLedger(tmp_path)
        await ledger.save(RetryState(scope="001-login", stage="tasks", count=1, max_retries=3))
        await ledger.save(RetryState(scope="001-login", stage="plan", count=2, max_retries=3))
        await ledger.save(RetryState(scope="001-login-v2", stage="plan", count=1, max_retries=3))

        states = await ledger.list_states("001-login")

        assert [state.stage for state in states] == ["plan", "tasks"]

    @pytest.mark.asyncio
    async def test_corrupt_record_raises(self, tmp_path):
        """Test an unreadable record is reported instead of silently reset."""
        ledger = FileRetryLedger(tmp_path)
        await ledger.save(RetryState(scope="001-login", stage="plan", count=1, max_retries=3))
        record = next((tmp_path / "retry").glob("*.json"))
        record.write_text("{not json")

        with pytest.raises(WorkflowError, match="corrupt retry state"):
            await ledger.load("001-login", "plan", max_retries=3)


# =============================================================================
# InMemoryRetryLedger
# =============================================================================


class TestInMemoryRetryLedger:
    """Test the non-durable in-memory ledger."""

    @pytest.mark.asyncio
    async def test_returns_copies(self):
        """Test mutating a loaded state does not change storage until saved."""
        ledger = InMemoryRetryLedger()
        await ledger.save(RetryState(scope="s", stage="plan", count=1, max_retries=3))

        state = await ledger.load("s", "plan", 3)
        state.increment()

        assert (await ledger.load("s", "plan", 3)).count == 1
        await ledger.save(state)
        assert (await ledger.load("s", "plan", 3)).count == 2

        await ledger.reset("s", "plan")
        assert await ledger.list_states("s") == []
