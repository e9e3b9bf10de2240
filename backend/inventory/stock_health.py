"""
Stock Health Classifier.

Maps current stock + sales activity in the lookback window to a status and a
recommendation:
  - out:     stock == 0
  - low:     0 < stock < 5
  - slow:    stock > 20 and no sales in the lookback window
  - healthy: everything else

The thresholds are fixed policy, not configuration.
"""

from dataclasses import dataclass

LOW_STOCK_THRESHOLD = 5  # exclusive upper bound for "low"
SLOW_STOCK_THRESHOLD = 20  # exclusive lower bound for "slow"

STATUS_OUT = "out"
STATUS_LOW = "low"
STATUS_SLOW = "slow"
STATUS_HEALTHY = "healthy"


@dataclass(frozen=True)
class StockHealth:
    status: str
    recommendation: str


def classify(current_stock: int, recent_sales_count: int, product_name: str = "this product") -> StockHealth:
    """Classify a product's stock position."""
    if current_stock <= 0:
        return StockHealth(STATUS_OUT, f"🚨 Out of stock - reorder {product_name} immediately")
    if current_stock < LOW_STOCK_THRESHOLD:
        return StockHealth(STATUS_LOW, f"⚠️ Low stock - only {current_stock} {product_name} remaining")
    if current_stock > SLOW_STOCK_THRESHOLD and recent_sales_count == 0:
        return StockHealth(STATUS_SLOW, f"📊 {product_name} moving slowly - consider promotion")
    return StockHealth(STATUS_HEALTHY, f"✅ {product_name} stock levels are healthy")
