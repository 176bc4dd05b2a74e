from .money import ZERO, quantize_rate, to_money, to_quantity

__all__ = ["ZERO", "quantize_rate", "to_money", "to_quantity"]
