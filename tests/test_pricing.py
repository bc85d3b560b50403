"""
Tests for cost aggregation and the pricing engine.

Verifies:
- Total cost is the sum of daily + bonus pay, order independent
- Store calculator breakdown and markup recommendation
- Local markup preview and markup validation
- Out-of-order pricing responses are discarded
- Saving pricing writes the snapshot onto the deployment
"""

import httpx
import pytest

from missionops.exceptions import ValidationError
from missionops.schemas import DailyLog, Deployment, PricingSnapshot, recommend
from missionops.services.pricing import day_totals, fleet_spend, get_total_cost, technician_totals


def _deployment(logs, deployment_id="d1"):
    return Deployment(
        id=deployment_id,
        title="Survey",
        date="2024-03-01",
        days_on_site=3,
        daily_logs=[
            DailyLog(id=f"l{i}", technician_id=tech, date=day, daily_pay=pay, bonus_pay=bonus)
            for i, (tech, day, pay, bonus) in enumerate(logs)
        ],
    )


LOGS = [
    ("p1", "2024-03-02", 400, 50),
    ("p2", "2024-03-01", 300, 0),
    ("p1", "2024-03-01", 400, 0),
    ("p3", "2024-03-03", 0, 0),
]


class TestCostAggregation:
    """Local totals over daily logs."""

    def test_total_cost(self):
        """Sum of dailyPay + bonusPay across every log, zero logs included."""
        assert get_total_cost(_deployment(LOGS)) == 1150

    def test_total_cost_order_independent(self):
        """Reordering the logs does not change the total."""
        assert get_total_cost(_deployment(list(reversed(LOGS)))) == get_total_cost(_deployment(LOGS))

    def test_no_deployment(self):
        """No deployment costs nothing."""
        assert get_total_cost(None) == 0.0
        assert get_total_cost(_deployment([])) == 0.0

    def test_missing_amounts_count_as_zero(self):
        """A log stored with null pay contributes zero."""
        log = DailyLog.model_validate({"technicianId": "p1", "date": "2024-03-01", "dailyPay": None, "bonusPay": None})
        assert log.total == 0

    def test_technician_totals(self):
        """Per-technician earnings."""
        assert technician_totals(_deployment(LOGS)) == {"p1": 850, "p2": 300, "p3": 0}

    def test_day_totals_sorted(self):
        """Per-day spend in calendar order."""
        assert list(day_totals(_deployment(LOGS)).items()) == [
            ("2024-03-01", 700),
            ("2024-03-02", 450),
            ("2024-03-03", 0),
        ]

    def test_fleet_spend(self):
        """Spend across several deployments."""
        assert fleet_spend([_deployment(LOGS, "d1"), _deployment(LOGS[:1], "d2")]) == 1600

    def test_engine_total_cost(self, ops, session):
        """The engine reports the open deployment's ledger total."""
        ops.logs.add_entry("2024-03-01", "p1", 400, 25)
        ops.logs.add_entry("2024-03-02", "p2", 300)
        assert ops.pricing.total_cost() == 725


class TestRecommendation:
    """Markup arithmetic."""

    def test_recommend(self):
        """Price = base x (1 + markup); margin is profit over price."""
        result = recommend(1000.0, 25)
        assert result["recommended_price"] == 1250.0
        assert result["estimated_profit"] == 250.0
        assert result["estimated_margin"] == pytest.approx(20.0)

    def test_zero_base_cost(self):
        """Nothing to price gives a zero margin, not a division error."""
        assert recommend(0.0, 30)["estimated_margin"] == 0.0

    def test_snapshot_patch(self):
        """The saved snapshot maps onto the deployment pricing fields."""
        snapshot = PricingSnapshot(
            deployment_id="d1", total_base_cost=1000.0, travel_cost=120.0, equipment_cost=80.0
        ).with_markup(25)
        assert snapshot.to_deployment_patch() == {
            "baseCost": 1000.0,
            "markupPercentage": 25,
            "clientPrice": 1250.0,
            "travelCosts": 120.0,
            "equipmentCosts": 80.0,
        }


class TestMarkupValidation:
    """Whole percentages within the configured range."""

    @pytest.mark.parametrize("markup,expected", [(30, 30), ("45", 45), (30.0, 30), (0, 0), (200, 200)])
    def test_accepted(self, ops, markup, expected):
        """Whole numbers in range pass."""
        assert ops.pricing.validate_markup(markup) == expected

    @pytest.mark.parametrize("markup", [30.5, "abc", "30.5", -1, 201, True, None])
    def test_rejected(self, ops, markup):
        """Fractions, garbage and out-of-range values fail."""
        with pytest.raises(ValidationError):
            ops.pricing.validate_markup(markup)


class TestPricingEngine:
    """Pricing against the in-memory store."""

    @pytest.fixture
    def crewed(self, ops, session):
        ops.crew.assign("p1")
        ops.crew.assign("p2")
        return session

    def test_calculate(self, ops, crewed):
        """Labor + lodging for two pilots over three days at the default markup."""
        snapshot = ops.pricing.calculate()

        assert snapshot.labor_cost == 2100
        assert snapshot.lodging_cost == 900
        assert snapshot.total_base_cost == 3000
        assert snapshot.markup_percentage == 30
        assert snapshot.recommended_price == pytest.approx(3900)
        assert snapshot.estimated_profit == pytest.approx(900)
        assert snapshot.estimated_margin == pytest.approx(900 / 3900 * 100)
        assert crewed.pricing is snapshot

    def test_calculate_with_override(self, ops, crewed):
        """An override markup is used by the calculator."""
        snapshot = ops.pricing.calculate(50)
        assert snapshot.recommended_price == pytest.approx(4500)

    def test_preview_is_local(self, ops, crewed, http):
        """Preview re-prices the last breakdown without another request."""
        ops.pricing.calculate()
        calls = []
        http.event_hooks["request"].append(calls.append)

        preview = ops.pricing.preview(100)

        assert calls == []
        assert preview.total_base_cost == 3000
        assert preview.recommended_price == 6000
        assert crewed.pricing is preview
        assert preview.seq == crewed.pricing_seq == 2

    def test_preview_without_snapshot_calculates(self, ops, crewed):
        """The first preview asks the store."""
        preview = ops.pricing.preview(10)
        assert preview.recommended_price == pytest.approx(3300)

    def test_save(self, ops, crewed, memory_store, deployment_id):
        """Saving writes the snapshot and reloads the deployment."""
        ops.days.stage_day("2024-03-09")
        ops.pricing.calculate()
        ops.pricing.preview(50)

        saved = ops.pricing.save()

        row = memory_store.deployments[deployment_id]
        assert row["clientPrice"] == 4500
        assert row["markupPercentage"] == 50
        assert saved.client_price == 4500
        assert saved.base_cost == 3000
        assert crewed.staged_days == ["2024-03-09"]

        # The store now prices at the saved markup
        assert ops.pricing.calculate().markup_percentage == 50

    def test_save_requires_snapshot(self, ops, session):
        """Nothing calculated, nothing to save."""
        with pytest.raises(ValidationError):
            ops.pricing.save()

    def test_save_rejects_foreign_snapshot(self, ops, session):
        """A snapshot from another deployment is refused."""
        with pytest.raises(ValidationError):
            ops.pricing.save(PricingSnapshot(deployment_id="other"))


class TestStalePricing:
    """Sequence numbers guard against out-of-order answers."""

    @staticmethod
    def _priced(markup):
        return httpx.Response(200, json={
            "success": True,
            "data": {
                "deploymentId": "dep-1",
                "calculation": {"totalBaseCost": 1000.0},
                "recommendation": {"markupPercentage": markup, "recommendedPrice": 1000.0 * (1 + markup / 100)},
            },
        })

    def test_older_response_discarded(self, fake_ops, fake_session, fake_store):
        """A response overtaken by a newer request is dropped."""
        seen = []

        def calculator(request, body):
            seen.append(body.get("markupOverride"))
            if len(seen) == 1:
                # A newer request is issued while the first is still in flight
                fake_ops.pricing.calculate(60)
            return self._priced(body.get("markupOverride") or 30)

        fake_store.handlers[("POST", "/pricing/calculate")] = calculator

        stale = fake_ops.pricing.calculate(40)

        assert stale is None
        assert seen == [40, 60]
        assert fake_session.pricing.markup_percentage == 60
        assert fake_session.pricing.seq == 2

    def test_response_after_close_discarded(self, fake_ops, fake_session, fake_store):
        """Closing the deployment while a request is in flight drops the answer."""

        def calculator(request, body):
            fake_ops.repository.close()
            return self._priced(30)

        fake_store.handlers[("POST", "/pricing/calculate")] = calculator

        assert fake_ops.pricing.calculate() is None
        assert fake_session.pricing is None
