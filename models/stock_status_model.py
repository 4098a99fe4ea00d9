from enum import Enum

OUT_OF_STOCK = "out_of_stock"
CRITICAL = "critical"
LOW_STOCK = "low_stock"
OVERSTOCKED = "overstocked"
IN_STOCK = "in_stock"

STATUS_LABELS = {
    OUT_OF_STOCK: "Out of Stock",
    CRITICAL: "Critical",
    LOW_STOCK: "Low Stock",
    OVERSTOCKED: "Overstocked",
    IN_STOCK: "In Stock",
}

# Statuses that call for a purchase
REORDER_STATUSES = (OUT_OF_STOCK, CRITICAL, LOW_STOCK)


class StockBasis(str, Enum):
    """Which quantity a status is judged on."""
    # Materials consumed by a tracked production line: stock left after the horizon
    PROJECTED = "projected"
    # Materials no tracked line consumes: stock on hand now
    CURRENT = "current"


def available_quantity(current_stock: float, projected_stock: float, basis: StockBasis) -> float:
    if basis is StockBasis.PROJECTED:
        return projected_stock
    return current_stock


def classify(available_qty: float, critical_stock: float, reorder_point: float, max_level: float) -> str:
    """
    Stock status, first match wins:
    out of stock > critical > low stock > overstocked > in stock.
    """
    if available_qty <= 0:
        return OUT_OF_STOCK
    if critical_stock > 0 and available_qty <= critical_stock:
        return CRITICAL
    if reorder_point > 0 and available_qty <= reorder_point:
        return LOW_STOCK
    if max_level > 0 and available_qty > max_level:
        return OVERSTOCKED
    return IN_STOCK


def status_label(status: str) -> str:
    return STATUS_LABELS.get(status, STATUS_LABELS[IN_STOCK])
