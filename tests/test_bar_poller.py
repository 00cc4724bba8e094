"""Polling engine: window selection, replace/merge policy, monotonicity, overlay."""

import pytest

from core.errors import TransientFetchError
from core.models import Bar
from datafeeds.bar_poller import BarPollingEngine, aggregate_window, merge_bars
from datafeeds.live_price import LivePriceOverlay
from datafeeds.subscription import Subscription
from tests.test_helpers import FakeHistoryClient, Recorder, make_bar

NOW = 10_000  # 10_000 // 60 * 60 == 9_960


def make_subscription(history_end: int = 0, last: Bar = None) -> Subscription:
    sub = Subscription(uid="u1", symbol="BTC:BINANCE", resolution="1", on_realtime=Recorder())
    sub.history_end = history_end
    sub.last_emitted_bar = last
    return sub


class TestAggregateWindow:
    def test_combines_rows_into_one_bar(self):
        rows = [
            Bar(time=120, open=11, high=15, low=10, close=14, volume=3),
            Bar(time=60, open=10, high=12, low=8, close=11, volume=2),
            Bar(time=180, open=14, high=14, low=9, close=12, volume=5),
        ]
        bar = aggregate_window(rows)
        assert bar == Bar(time=60, open=10, high=15, low=8, close=12, volume=10)

    def test_single_row_is_identity(self):
        row = make_bar(60, close=5.0, volume=2.0)
        assert aggregate_window([row]) == row

    def test_empty_input_is_rejected(self):
        with pytest.raises(ValueError):
            aggregate_window([])


def test_merge_keeps_open_widens_range_takes_new_close_and_volume():
    existing = Bar(time=60, open=10, high=12, low=9, close=11, volume=7)
    polled = Bar(time=60, open=99, high=13, low=9.5, close=12.5, volume=4)
    merged = merge_bars(existing, polled)
    assert merged == Bar(time=60, open=10, high=13, low=9, close=12.5, volume=4)


class TestPollTick:
    @pytest.mark.asyncio
    async def test_fetches_last_completed_bucket(self):
        source = FakeHistoryClient({"BTC:BINANCE": [make_bar(9_900, close=101)]})
        engine = BarPollingEngine(source)
        sub = make_subscription()

        bar = await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW)

        assert source.calls == [("BTC:BINANCE", "1", 9_900, 9_960)]
        assert bar == make_bar(9_900, close=101)
        assert sub.last_emitted_bar == bar

    @pytest.mark.asyncio
    async def test_window_starts_at_history_end(self):
        source = FakeHistoryClient({"BTC:BINANCE": [make_bar(9_900)]})
        engine = BarPollingEngine(source)
        sub = make_subscription(history_end=9_930)

        await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW)

        assert source.calls[0][2:] == (9_930, 9_960)

    @pytest.mark.asyncio
    async def test_empty_window_is_a_noop(self):
        source = FakeHistoryClient({"BTC:BINANCE": [make_bar(9_960)]})
        engine = BarPollingEngine(source)
        sub = make_subscription(history_end=9_990)

        assert await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW) is None
        assert source.calls == []
        assert sub.last_emitted_bar is None

    @pytest.mark.asyncio
    async def test_stale_bar_is_discarded(self):
        last = make_bar(300, close=50)
        source = FakeHistoryClient({"BTC:BINANCE": [make_bar(200, close=40)]})
        engine = BarPollingEngine(source)
        sub = make_subscription(last=last)

        assert await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW) is None
        assert sub.last_emitted_bar == last
        assert engine.stale_skipped == 1

    @pytest.mark.asyncio
    async def test_new_bucket_replaces_current_bar(self):
        last = Bar(time=9_840, open=1, high=5, low=1, close=4, volume=9)
        polled = Bar(time=9_900, open=4, high=6, low=3, close=5, volume=2)
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": [polled]}))
        sub = make_subscription(last=last)

        assert await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW) == polled

    @pytest.mark.asyncio
    async def test_same_bucket_is_merged(self):
        last = Bar(time=9_900, open=1, high=5, low=2, close=4, volume=9)
        polled = Bar(time=9_900, open=3, high=4, low=1, close=3.5, volume=6)
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": [polled]}))
        sub = make_subscription(last=last)

        bar = await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW)
        assert bar == Bar(time=9_900, open=1, high=5, low=1, close=3.5, volume=6)

    @pytest.mark.asyncio
    async def test_repolling_identical_rows_is_idempotent(self):
        rows = [make_bar(9_900, close=10, volume=1), make_bar(9_930, close=11, volume=2)]
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": rows}))
        sub = make_subscription()

        first = await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW)
        second = await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW)
        assert first == second
        assert first.volume == 3

    @pytest.mark.asyncio
    async def test_emitted_times_never_decrease(self):
        # Upstream answers out of order across ticks
        answers = iter([[make_bar(t)] for t in (120, 60, 180, 180, 120, 240, 60)])
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": lambda f, t: next(answers)}))
        sub = make_subscription()

        emitted = []
        for _ in range(7):
            bar = await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW)
            if bar is not None:
                emitted.append(bar.time)

        assert emitted == [120, 180, 180, 240]
        assert emitted == sorted(emitted)

    @pytest.mark.asyncio
    async def test_fetch_error_skips_tick(self):
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": TransientFetchError("BTC:BINANCE", "HTTP 502")}))
        sub = make_subscription(last=make_bar(9_840))

        assert await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW) is None
        assert sub.last_emitted_bar == make_bar(9_840)
        assert engine.errors == 1

    @pytest.mark.asyncio
    async def test_no_rows_leaves_bar_alone(self):
        engine = BarPollingEngine(FakeHistoryClient())
        sub = make_subscription(last=make_bar(9_840))
        assert await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW) is None
        assert sub.last_emitted_bar == make_bar(9_840)

    @pytest.mark.asyncio
    async def test_result_for_cancelled_subscription_is_dropped(self):
        sub = make_subscription()

        def cancel_mid_fetch(from_ts, to_ts):
            sub.cancel()
            return [make_bar(9_900)]

        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": cancel_mid_fetch}))
        assert await engine.poll_tick("BTC:BINANCE", "1", sub, now=NOW) is None
        assert sub.last_emitted_bar is None


class TestFetchHistory:
    @pytest.mark.asyncio
    async def test_appends_live_bar_when_history_is_behind(self):
        rows = [make_bar(9_840), make_bar(9_900)]
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": rows}))

        bars, seed = await engine.fetch_history("BTC:BINANCE", "1", 0, 9_960, live_price="105.5", now=NOW)

        assert [b.time for b in bars] == [9_840, 9_900, 9_960]
        assert seed == Bar(time=9_960, open=105.5, high=105.5, low=105.5, close=105.5, volume=0.0)
        assert bars[-1] == seed

    @pytest.mark.asyncio
    async def test_folds_live_price_into_current_bucket(self):
        rows = [make_bar(9_900), Bar(time=9_960, open=100, high=101, low=99, close=100, volume=3)]
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": rows}))

        bars, seed = await engine.fetch_history("BTC:BINANCE", "1", 0, 9_960, live_price=103, now=NOW)

        assert len(bars) == 2
        assert seed == Bar(time=9_960, open=100, high=103, low=99, close=103, volume=3)

    @pytest.mark.asyncio
    async def test_without_live_price_seeds_last_bar(self):
        rows = [make_bar(9_840), make_bar(9_900)]
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": rows}))

        bars, seed = await engine.fetch_history("BTC:BINANCE", "1", 0, 9_960, live_price="", now=NOW)

        assert len(bars) == 2
        assert seed == make_bar(9_900)

    @pytest.mark.asyncio
    async def test_fetch_error_is_no_data(self):
        engine = BarPollingEngine(FakeHistoryClient({"BTC:BINANCE": TransientFetchError("BTC:BINANCE", "timeout")}))
        assert await engine.fetch_history("BTC:BINANCE", "1", 0, 9_960, now=NOW) == ([], None)


class TestLivePriceOverlay:
    def test_updates_close_high_low_only(self):
        on_bar = Recorder()
        overlay = LivePriceOverlay(on_bar=on_bar, current_bar=Bar(time=60, open=10, high=11, low=9, close=10, volume=4))

        bar = overlay.apply_live_price("12.5")

        assert bar == Bar(time=60, open=10, high=12.5, low=9, close=12.5, volume=4)
        assert overlay.current_bar == bar
        assert on_bar.calls == [bar]

    @pytest.mark.parametrize("price", [None, "", "abc", 0, -1, float("nan")])
    def test_ignores_invalid_prices(self, price):
        on_bar = Recorder()
        current = make_bar(60)
        overlay = LivePriceOverlay(on_bar=on_bar, current_bar=current)

        assert overlay.apply_live_price(price) is None
        assert overlay.current_bar == current
        assert on_bar.calls == []

    def test_noop_without_subscriber_or_bar(self):
        assert LivePriceOverlay(current_bar=make_bar(60)).apply_live_price(5) is None
        assert LivePriceOverlay(on_bar=Recorder()).apply_live_price(5) is None

    def test_overlay_then_poll_same_bucket_merges(self):
        engine = BarPollingEngine(FakeHistoryClient())
        sub = make_subscription(last=Bar(time=9_900, open=10, high=10, low=10, close=10, volume=1))

        sub.overlay.apply_live_price(12)
        bar = engine.apply_polled_bar(sub, Bar(time=9_900, open=10, high=11, low=9, close=11, volume=5))

        assert bar == Bar(time=9_900, open=10, high=12, low=9, close=11, volume=5)
