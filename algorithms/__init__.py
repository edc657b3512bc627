from .energy_calculator import EnergyCalculator
from .weight_converter import WeightConverter

__all__ = ["EnergyCalculator", "WeightConverter"]
