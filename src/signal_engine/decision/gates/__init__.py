"""Independent decision gates."""

from .base import Gate
from .regime_gate import RegimeGate
from .structural_gate import StructuralGate
from .market_gate import MarketGate

__all__ = ["Gate", "RegimeGate", "StructuralGate", "MarketGate"]
