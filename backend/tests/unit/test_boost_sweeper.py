from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from meowlah.domain.boosts.ledger import BoostLedger
from meowlah.domain.boosts.models import TargetType
from meowlah.domain.boosts.sweeper import BoostExpirySweeper
from meowlah.domain.feed.cache import feed_key
from meowlah.infra.redis import redis_client
from meowlah.obs import metrics as obs_metrics

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def sweeper(boost_repo, feed_cache) -> BoostExpirySweeper:
    return BoostExpirySweeper(repository=boost_repo, cache=feed_cache, batch_size=2, timeout_seconds=1.0)


def _job_runs(result: str) -> float:
    return obs_metrics.BACKGROUND_RUNS.labels(name="boost-expiry-sweeper", result=result)._value.get()


@pytest.mark.asyncio
async def test_scenario_c_expired_boost_cleared_once(sweeper, boost_repo):
    purchaser = str(uuid4())
    post_id = str(uuid4())
    boost_repo.add_target(TargetType.POST, post_id)
    ledger = BoostLedger(repository=boost_repo)
    boost = await ledger.create(target_type="post", target_id=post_id, purchaser_id=purchaser, duration_hours=1)
    # Window ends one second before NOW
    await ledger.activate(
        str(boost.id), payment_reference="ref", actor_id=purchaser, now=NOW - timedelta(hours=1, seconds=1)
    )
    assert boost_repo.target(TargetType.POST, post_id).is_boosted is True

    first = await sweeper.run_once(NOW)
    second = await sweeper.run_once(NOW)

    assert first == 1
    assert second == 0
    row = boost_repo.target(TargetType.POST, post_id)
    assert row.is_boosted is False
    assert row.boost_expires_at == NOW - timedelta(seconds=1)


@pytest.mark.asyncio
async def test_unexpired_promotions_are_left_alone(sweeper, boost_repo):
    active = str(uuid4())
    boost_repo.add_target(TargetType.LOST_CAT, active, is_boosted=True, boost_expires_at=NOW + timedelta(minutes=1))

    assert await sweeper.run_once(NOW) == 0
    assert boost_repo.target(TargetType.LOST_CAT, active).is_boosted is True


@pytest.mark.asyncio
async def test_sweeps_every_kind_across_batches(sweeper, boost_repo):
    targets = []
    for kind in TargetType:
        for minutes in range(3):
            target_id = str(uuid4())
            boost_repo.add_target(kind, target_id, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=minutes + 1))
            targets.append((kind, target_id))

    assert await sweeper.run_once(NOW) == 9
    assert all(not boost_repo.target(kind, target_id).is_boosted for kind, target_id in targets)


@pytest.mark.asyncio
async def test_reactivation_during_sweep_is_not_clobbered(sweeper, boost_repo):
    target = str(uuid4())
    boost_repo.add_target(TargetType.POST, target, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=5))
    fresh_expiry = NOW + timedelta(hours=3)

    async def _activation_lands(item):
        # A new paid boost promotes the target between the sweeper's read and its write.
        await boost_repo.promote_target(TargetType.POST, target, fresh_expiry)

    boost_repo.before_clear = _activation_lands

    cleared = await sweeper.run_once(NOW)

    assert cleared == 0
    row = boost_repo.target(TargetType.POST, target)
    assert row.is_boosted is True
    assert row.boost_expires_at == fresh_expiry


@pytest.mark.asyncio
async def test_clearance_invalidates_feed_cache(sweeper, boost_repo):
    await redis_client.set(feed_key(None, 1, 20), "{}")
    boost_repo.add_target(TargetType.POST, str(uuid4()), is_boosted=True, boost_expires_at=NOW - timedelta(seconds=1))

    await sweeper.run_once(NOW)

    assert await redis_client.get(feed_key(None, 1, 20)) is None


@pytest.mark.asyncio
async def test_empty_sweep_keeps_feed_cache(sweeper):
    await redis_client.set(feed_key(None, 1, 20), "{}")

    assert await sweeper.run_once(NOW) == 0
    assert await redis_client.get(feed_key(None, 1, 20)) == "{}"


@pytest.mark.asyncio
async def test_item_failure_does_not_abort_siblings(sweeper, boost_repo, caplog):
    broken = str(uuid4())
    healthy = str(uuid4())
    boost_repo.add_target(TargetType.POST, broken, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=2))
    boost_repo.add_target(TargetType.POST, healthy, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=1))
    boost_repo.fail_clear_for.add(broken)

    with caplog.at_level(logging.WARNING, logger="meowlah.domain.boosts.sweeper"):
        cleared = await sweeper.run_once(NOW)

    assert cleared == 1
    assert boost_repo.target(TargetType.POST, healthy).is_boosted is False
    assert boost_repo.target(TargetType.POST, broken).is_boosted is True
    assert any(r.getMessage() == "boosts.sweep_item_failed" for r in caplog.records)


@pytest.mark.asyncio
async def test_overlapping_run_is_skipped(sweeper, boost_repo):
    release = asyncio.Event()
    target = str(uuid4())
    boost_repo.add_target(TargetType.POST, target, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=1))

    async def _slow(item):
        await release.wait()

    boost_repo.before_clear = _slow
    skipped_before = _job_runs("skipped")

    first = asyncio.create_task(sweeper.run_once(NOW))
    await asyncio.sleep(0.01)
    second = await sweeper.run_once(NOW)
    release.set()

    assert second == 0
    assert await first == 1
    assert _job_runs("skipped") == skipped_before + 1


@pytest.mark.asyncio
async def test_run_is_time_bounded(boost_repo, feed_cache):
    sweeper = BoostExpirySweeper(repository=boost_repo, cache=feed_cache, batch_size=10, timeout_seconds=0.05)
    stuck = str(uuid4())
    boost_repo.add_target(TargetType.POST, stuck, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=1))

    async def _hang(item):
        await asyncio.sleep(5)

    boost_repo.before_clear = _hang
    timeouts_before = _job_runs("timeout")

    assert await sweeper.run_once(NOW) == 0
    assert _job_runs("timeout") == timeouts_before + 1

    # The lock is released after a timed-out run.
    boost_repo.before_clear = None
    assert await sweeper.run_once(NOW) == 1


@pytest.mark.asyncio
async def test_timed_out_run_still_invalidates_for_cleared_rows(boost_repo, feed_cache):
    sweeper = BoostExpirySweeper(repository=boost_repo, cache=feed_cache, batch_size=10, timeout_seconds=0.1)
    cleared_first = str(uuid4())
    stuck = str(uuid4())
    boost_repo.add_target(TargetType.POST, cleared_first, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=2))
    boost_repo.add_target(TargetType.POST, stuck, is_boosted=True, boost_expires_at=NOW - timedelta(minutes=1))
    await redis_client.set(feed_key(None, 1, 20), "{}")

    async def _hang_on_second(item):
        if str(item.target_id) == stuck:
            await asyncio.sleep(5)

    boost_repo.before_clear = _hang_on_second

    cleared = await sweeper.run_once(NOW)

    assert cleared == 1
    assert boost_repo.target(TargetType.POST, cleared_first).is_boosted is False
    assert boost_repo.target(TargetType.POST, stuck).is_boosted is True
    assert await redis_client.get(feed_key(None, 1, 20)) is None
