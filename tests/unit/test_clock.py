from datetime import date, datetime, timezone

from sales_kernel.domain.clock import DeterministicClock, SystemClock


class TestDeterministicClock:

    def test_fixed_until_advanced(self):
        clock = DeterministicClock()
        assert clock.now() == clock.now()
        assert clock.today() == date(2024, 1, 1)

    def test_advance_days(self):
        clock = DeterministicClock()
        assert clock.advance_days(31) == date(2024, 2, 1)

    def test_set_time_resets_advance(self):
        clock = DeterministicClock()
        clock.advance(3600)
        moment = datetime(2025, 6, 30, 8, 0, tzinfo=timezone.utc)
        clock.set_time(moment)
        assert clock.now() == moment


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo is timezone.utc
