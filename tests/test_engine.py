import asyncio

import pytest

from starfire.accumulator import Bucket
from starfire.config import EngineConfig
from starfire.engine import FeeEngine
from starfire.results import CycleStatus, DistributionStatus


def make_engine(kit, policy, *, fee_source=None, state_file=None, registry=None):
    return FeeEngine(
        kit.MINT,
        fee_source=fee_source or kit.FeeSource(),
        swap=kit.Swap(),
        pool=kit.Pool(),
        registry=registry or kit.Registry(),
        policy=policy,
        state_file=state_file,
    )


def test_status_before_any_activity(kit, fast_policy):
    engine = make_engine(kit, fast_policy)
    status = engine.get_status()

    assert status["asset"] == kit.MINT
    assert status["momentum"] == {"value": 50.0, "ready": False, "samples": 0}
    assert status["momentum_action"]["action"] == "accumulate"
    assert status["accumulated"] == {b.value: 0 for b in Bucket}
    assert status["stranded"] == {}
    assert status["stats"]["distributions"] == 0
    assert status["loop_running"] is False


def test_asset_is_required(kit, fast_policy):
    with pytest.raises(ValueError):
        FeeEngine(
            "",
            fee_source=kit.FeeSource(),
            swap=kit.Swap(),
            pool=kit.Pool(),
            registry=kit.Registry(),
        )


def test_distribute_and_flush(kit, fast_policy):
    registry = kit.Registry(kit.holders(1))
    engine = make_engine(kit, fast_policy, registry=registry)

    report = asyncio.run(engine.distribute_fees(400_000))
    assert report.status is DistributionStatus.DISTRIBUTED
    assert engine.get_status()["accumulated"]["holder_reward"] == 100_000

    registry.holders = kit.holders(6)
    for price in kit.falling():
        asyncio.run(engine.update_price(price))
    flushed = asyncio.run(engine.flush_accumulated())
    assert flushed.total >= 100_000
    assert engine.get_status()["accumulated"]["holder_reward"] == 0


def test_state_file_survives_restart(tmp_path, kit, fast_policy):
    state_file = tmp_path / "engine-state.json"
    fee_source = kit.FeeSource(claims=[1_000_000_000])
    engine = make_engine(kit, fast_policy, fee_source=fee_source, state_file=state_file)

    report = asyncio.run(engine.claim_and_distribute())
    assert report.status is CycleStatus.DISTRIBUTED
    pending = engine.get_status()["accumulated"]["buyback"]
    assert pending == 248_750_000
    assert state_file.exists()

    restarted = make_engine(kit, fast_policy, state_file=state_file)
    assert restarted.get_status()["accumulated"]["buyback"] == pending
    assert restarted.stats.total_claimed == 1_000_000_000


def test_loop_runs_immediately_and_stops(kit, fast_policy):
    fee_source = kit.FeeSource(claims=[0], prices=[1.0])
    engine = make_engine(kit, fast_policy, fee_source=fee_source)
    results = []

    async def main():
        loop = engine.start_loop(3600, on_result=results.append)
        assert engine.start_loop(3600) is loop
        assert engine.loop_running
        await asyncio.sleep(0.02)
        engine.stop_loop()
        engine.stop_loop()
        await engine.wait_idle()

    asyncio.run(main())
    assert [r.status for r in results] == [CycleStatus.NO_FEES]
    assert fee_source.count("get_price") == 1
    assert engine.momentum.samples == (1.0,)
    assert not engine.loop_running


def test_price_polling_feeds_momentum(kit, fast_policy):
    fee_source = kit.FeeSource(prices=[1.0, 2.0, 3.0])
    engine = make_engine(kit, fast_policy, fee_source=fee_source)

    async def main():
        engine.start_price_polling(0.01)
        await asyncio.sleep(0.045)
        engine.stop_loop()
        await engine.wait_idle()

    asyncio.run(main())
    assert engine.momentum.samples[:2] == (1.0, 2.0)


def test_loop_leaves_sampling_to_the_price_poller(kit, fast_policy):
    fee_source = kit.FeeSource(claims=[0], prices=[1.0, 2.0])
    engine = make_engine(kit, fast_policy, fee_source=fee_source)

    async def main():
        engine.start_price_polling(3600)
        engine.start_loop(3600)
        await asyncio.sleep(0.02)
        engine.stop_loop()
        await engine.wait_idle()

    asyncio.run(main())
    assert fee_source.count("get_price") == 1
    assert fee_source.count("claim") == 1
    assert engine.momentum.samples == (1.0,)


def test_from_config(kit):
    cfg = EngineConfig(token_mint=kit.MINT, min_holders=2, operating_reserve_lamports=0)
    engine = FeeEngine.from_config(
        cfg,
        fee_source=kit.FeeSource(),
        swap=kit.Swap(),
        pool=kit.Pool(),
        registry=kit.Registry(),
    )
    assert engine.pipeline.operating_reserve == 0
    assert engine.orchestrator.min_fee_threshold == 100_000

    with pytest.raises(ValueError):
        FeeEngine.from_config(
            EngineConfig(),
            fee_source=kit.FeeSource(),
            swap=kit.Swap(),
            pool=kit.Pool(),
            registry=kit.Registry(),
        )
