class WeightConverter:
    """Utility for converting between kg and lb."""

    LB_PER_KG = 2.2046226218
    UNITS = ("kg", "lb")

    @staticmethod
    def kg_to_lb(kg: float) -> float:
        return round(kg * WeightConverter.LB_PER_KG, 2)

    @staticmethod
    def lb_to_kg(lb: float) -> float:
        return round(lb / WeightConverter.LB_PER_KG, 2)

    @staticmethod
    def to_kg(value: float, unit: str) -> float:
        """Return ``value`` expressed in kg without rounding."""
        if unit not in WeightConverter.UNITS:
            raise ValueError(f"unknown unit: {unit}")
        return value if unit == "kg" else value / WeightConverter.LB_PER_KG

    @staticmethod
    def format_weight_from_kg(weight_kg: float, unit: str) -> str:
        """Return ``weight_kg`` in ``unit`` formatted with one decimal."""
        converted = weight_kg if unit == "kg" else weight_kg * WeightConverter.LB_PER_KG
        return f"{converted:.1f}"
