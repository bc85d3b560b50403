from typing import Optional

from pydantic import Field

from .deployments import CamelModel


def recommend(total_base_cost: float, markup_percentage: float) -> dict:
    """Price, profit and margin for a base cost at the given markup percent."""
    recommended_price = total_base_cost * (1 + markup_percentage / 100)
    estimated_profit = recommended_price - total_base_cost
    estimated_margin = (estimated_profit / recommended_price) * 100 if recommended_price else 0.0
    return {
        "markup_percentage": markup_percentage,
        "recommended_price": recommended_price,
        "estimated_profit": estimated_profit,
        "estimated_margin": estimated_margin,
    }


class PricingSnapshot(CamelModel):
    deployment_id: str
    labor_cost: float = 0.0
    lodging_cost: float = 0.0
    travel_cost: float = 0.0
    equipment_cost: float = 0.0
    total_base_cost: float = 0.0
    markup_percentage: float = 0.0
    recommended_price: float = 0.0
    estimated_margin: float = 0.0
    estimated_profit: float = 0.0
    # Request sequence number, set by PricingEngine. Never sent to the store.
    seq: Optional[int] = Field(default=None, exclude=True)

    @classmethod
    def from_api(cls, data: dict, seq: Optional[int] = None) -> "PricingSnapshot":
        calculation = data.get("calculation") or {}
        recommendation = data.get("recommendation") or {}
        return cls(
            deployment_id=str(data.get("deploymentId")),
            labor_cost=calculation.get("laborCost") or 0.0,
            lodging_cost=calculation.get("lodgingCost") or 0.0,
            travel_cost=calculation.get("travelCost") or 0.0,
            equipment_cost=calculation.get("equipmentCost") or 0.0,
            total_base_cost=calculation.get("totalBaseCost") or 0.0,
            markup_percentage=recommendation.get("markupPercentage") or 0.0,
            recommended_price=recommendation.get("recommendedPrice") or 0.0,
            estimated_margin=recommendation.get("estimatedMargin") or 0.0,
            estimated_profit=recommendation.get("estimatedProfit") or 0.0,
            seq=seq,
        )

    def with_markup(self, markup_percentage: float) -> "PricingSnapshot":
        return self.model_copy(update=recommend(self.total_base_cost, markup_percentage))

    def to_deployment_patch(self) -> dict:
        """Fields written onto the deployment by PUT deployment(id).pricing."""
        return {
            "baseCost": self.total_base_cost,
            "markupPercentage": self.markup_percentage,
            "clientPrice": self.recommended_price,
            "travelCosts": self.travel_cost,
            "equipmentCosts": self.equipment_cost,
        }
