"""
RateController tests: soft delay, hard rejection, exemptions, refunds.
"""
import pytest

from services.rate_controller import RateAction, RateController, parse_networks


@pytest.fixture
def limiter(clock):
    return RateController(
        name="api",
        hard_limit=100,
        window_seconds=900,
        soft_limit=50,
        delay_ms=500,
        exempt_networks=["127.0.0.0/8", "::1/128", "10.0.0.0/8"],
        clock=clock,
    )


class TestAdmit:
    def test_allows_up_to_soft_limit(self, limiter):
        decisions = [limiter.admit("203.0.113.5") for _ in range(50)]
        assert all(d.action is RateAction.ALLOW for d in decisions)
        assert decisions[-1].remaining == 50

    def test_delays_between_soft_and_hard_limit(self, limiter):
        for _ in range(50):
            limiter.admit("203.0.113.5")
        decision = limiter.admit("203.0.113.5")
        assert decision.action is RateAction.DELAY
        assert decision.delay_ms == 500

    def test_rejects_request_after_hard_limit(self, limiter):
        for _ in range(100):
            assert limiter.admit("203.0.113.5").action is not RateAction.REJECT
        decision = limiter.admit("203.0.113.5")
        assert decision.action is RateAction.REJECT
        assert decision.remaining == 0
        assert 0 < decision.retry_after <= 900

    def test_window_resets(self, limiter, clock):
        for _ in range(101):
            limiter.admit("203.0.113.5")
        clock.advance(900)
        decision = limiter.admit("203.0.113.5")
        assert decision.action is RateAction.ALLOW
        assert limiter.count("203.0.113.5") == 1

    def test_identities_are_independent(self, limiter):
        for _ in range(101):
            limiter.admit("203.0.113.5")
        assert limiter.admit("198.51.100.7").action is RateAction.ALLOW


class TestExemptions:
    @pytest.mark.parametrize("address", ["127.0.0.1", "::1", "10.20.30.40"])
    def test_trusted_networks_bypass(self, limiter, address):
        for _ in range(150):
            decision = limiter.admit(address)
        assert decision.exempt
        assert decision.action is RateAction.ALLOW
        assert limiter.count(address) == 0

    def test_unparseable_address_is_not_exempt(self, limiter):
        assert not limiter.is_exempt("testclient")
        assert not limiter.is_exempt("")

    def test_separate_address_argument(self, limiter):
        assert limiter.admit("user-42", address="127.0.0.1").exempt

    def test_invalid_networks_are_skipped(self):
        networks = parse_networks(["10.0.0.0/8", "not-a-network"])
        assert [str(n) for n in networks] == ["10.0.0.0/8"]


class TestRefundAndSweep:
    def test_refund_gives_back_one_request(self, clock):
        auth = RateController("auth", hard_limit=5, window_seconds=900, clock=clock)
        for _ in range(5):
            auth.admit("203.0.113.5")
        auth.refund("203.0.113.5")
        assert auth.admit("203.0.113.5").action is RateAction.ALLOW
        assert auth.admit("203.0.113.5").action is RateAction.REJECT

    def test_refund_never_goes_negative(self, clock):
        auth = RateController("auth", hard_limit=5, window_seconds=900, clock=clock)
        auth.refund("nobody")
        auth.admit("x")
        auth.refund("x")
        auth.refund("x")
        assert auth.count("x") == 0

    def test_no_delay_without_soft_limit(self, clock):
        auth = RateController("auth", hard_limit=5, window_seconds=900, clock=clock)
        assert all(auth.admit("x").action is RateAction.ALLOW for _ in range(5))

    def test_sweep_drops_finished_windows(self, limiter, clock):
        limiter.admit("203.0.113.5")
        clock.advance(500)
        limiter.admit("198.51.100.7")
        clock.advance(400)
        assert limiter.sweep() == 1
        assert limiter.count("203.0.113.5") == 0
        assert limiter.count("198.51.100.7") == 1
