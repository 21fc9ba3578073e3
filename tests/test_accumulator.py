import pytest

from starfire.accumulator import AssetKind, Bucket, BucketAccumulator, StrandedPosition


def test_failures_compound_and_success_clears():
    acc = BucketAccumulator()
    acc.record_failure(Bucket.BURN, 100)
    acc.record_failure(Bucket.BURN, 250)
    assert acc[Bucket.BURN] == 350
    assert acc.effective(Bucket.BURN, 50) == 400

    acc.record_success(Bucket.BURN)
    assert acc[Bucket.BURN] == 0
    assert acc.effective(Bucket.BURN, 50) == 50


def test_success_can_carry_unspent_amount():
    acc = BucketAccumulator()
    acc.record_failure("buyback", 1_000)
    acc.record_success("buyback", carry=400)
    assert acc[Bucket.BUYBACK] == 400
    acc.record_success("buyback", carry=-5)
    assert acc[Bucket.BUYBACK] == 0


def test_negative_share_rejected():
    with pytest.raises(ValueError):
        BucketAccumulator().record_failure(Bucket.LP_POOL, -1)


def test_drain_and_restore():
    acc = BucketAccumulator()
    acc.record_failure(Bucket.BURN, 10)
    acc.record_deferral(Bucket.HOLDER_REWARD, 20)

    drained = acc.drain()
    assert drained[Bucket.BURN] == 10
    assert drained[Bucket.HOLDER_REWARD] == 20
    assert acc.total() == 0

    acc.restore(drained)
    assert acc.snapshot() == {"burn": 10, "buyback": 0, "holder_reward": 20, "lp_pool": 0}


def test_stranded_positions_are_tracked_per_bucket():
    acc = BucketAccumulator()
    acc.strand(Bucket.BURN, StrandedPosition(AssetKind.TOKEN, 5_000))
    acc.strand(Bucket.BURN, StrandedPosition(AssetKind.TOKEN, 0))
    acc.strand(Bucket.LP_POOL, StrandedPosition(AssetKind.POOL_SHARE, 9, "LP"))

    assert acc.stranded_snapshot() == {
        "burn": [{"kind": "token", "amount": 5_000, "ref": None}],
        "lp_pool": [{"kind": "pool_share", "amount": 9, "ref": "LP"}],
    }
    taken = acc.take_stranded(Bucket.BURN)
    assert [p.amount for p in taken] == [5_000]
    assert acc.stranded(Bucket.BURN) == []
    # stranded assets never count as pending lamports
    assert acc.total() == 0


def test_position_round_trips_through_dict():
    position = StrandedPosition(AssetKind.POOL_SHARE, 12, "LPMint")
    assert StrandedPosition.from_dict(position.as_dict()) == position
