"""Unit tests for data models."""
from __future__ import annotations

import pytest

from lendledger.config import AssetConfig
from lendledger.fixed_point import WAD
from lendledger.models import (
    AccountSnapshot,
    AssetState,
    LedgerState,
    Position,
    PriceQuote,
)


class TestPriceQuote:
    def test_frozen(self) -> None:
        q = PriceQuote(price=WAD, as_of=1)
        with pytest.raises(AttributeError):
            q.price = 2 * WAD  # type: ignore[misc]

    def test_equality(self) -> None:
        assert PriceQuote(price=WAD, as_of=1) == PriceQuote(price=WAD, as_of=1)


class TestAssetState:
    def test_defaults(self) -> None:
        a = AssetState(config=AssetConfig(asset_id="USDC", decimals=6))
        assert a.asset_id == "USDC"
        assert a.supply_index == WAD
        assert a.borrow_index == WAD
        assert a.reserves == 0


class TestPosition:
    def test_empty(self) -> None:
        assert Position(user="alice", asset_id="USDC").is_empty

    def test_not_empty_with_debt(self) -> None:
        assert not Position(user="alice", asset_id="USDC", principal_borrowed=1).is_empty


class TestAccountSnapshot:
    def test_is_healthy_boundary(self) -> None:
        snap = AccountSnapshot(
            user="alice",
            total_collateral_value=0,
            weighted_collateral_value=0,
            total_debt_value=0,
            health_factor_bps=10_000,
        )
        assert snap.is_healthy
        assert snap.balances == ()

    def test_unhealthy(self) -> None:
        snap = AccountSnapshot(
            user="alice",
            total_collateral_value=0,
            weighted_collateral_value=0,
            total_debt_value=1,
            health_factor_bps=9_999,
        )
        assert not snap.is_healthy


class TestLedgerState:
    def test_snapshot_restore(self) -> None:
        state = LedgerState()
        state.assets["USDC"] = AssetState(config=AssetConfig(asset_id="USDC"))
        snapshot = state.snapshot()

        state.assets["USDC"].reserves = 99
        state.record("alice", "USDC")
        state.positions["alice"] = {"USDC": Position(user="alice", asset_id="USDC")}
        state.restore(snapshot)

        assert state.assets["USDC"].reserves == 0
        assert state.positions == {}

    def test_restore_can_repeat(self) -> None:
        state = LedgerState()
        snapshot = state.snapshot()
        state.restore(snapshot)
        state.assets["X"] = AssetState(config=AssetConfig(asset_id="X"))
        state.restore(snapshot)
        assert state.assets == {}

    def test_restore_only_rewrites_recorded_positions(self) -> None:
        state = LedgerState()
        bob = Position(user="bob", asset_id="USDC", principal_supplied=5)
        alice = Position(user="alice", asset_id="USDC", principal_supplied=7)
        state.positions = {"alice": {"USDC": alice}, "bob": {"USDC": bob}}
        snapshot = state.snapshot()

        state.record("alice", "USDC")
        alice.principal_supplied = 0
        state.restore(snapshot)

        assert state.positions["alice"]["USDC"].principal_supplied == 7
        assert state.positions["bob"]["USDC"] is bob
        assert list(snapshot.positions) == [("alice", "USDC")]

    def test_record_outside_operation_is_noop(self) -> None:
        state = LedgerState()
        state.record("alice", "USDC")
        snapshot = state.snapshot()
        state.commit()
        state.record("alice", "USDC")
        assert snapshot.positions == {}
