"""
Nutrition value types shared by normalization, scoring, sources and the resolver.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Optional, Tuple


class FoodCategory(str, Enum):
    POULTRY = "poultry"
    MEAT = "meat"
    SEAFOOD = "seafood"
    DAIRY = "dairy"
    VEGETABLES = "vegetables"
    FRUITS = "fruits"
    GRAINS = "grains"
    LEGUMES = "legumes"
    NUTS = "nuts"
    SWEETS = "sweets"
    BEVERAGES = "beverages"
    UNKNOWN = "unknown"


class SourceTier(str, Enum):
    CACHE = "cache"
    LOCAL_DB = "local_db"
    USDA = "usda"
    EXACT_NAME = "exact_name"
    PACKAGED = "packaged"
    IDENTIFIER = "identifier"
    NONE = "none"


# Fixed unit per nutrient
NUTRIENT_UNITS: Dict[str, str] = {
    "calories": "kcal",
    "carbs": "g",
    "protein": "g",
    "fat": "g",
    "fiber": "g",
    "sugar": "g",
    "sodium": "mg",
}
NUTRIENT_NAMES: Tuple[str, ...] = tuple(NUTRIENT_UNITS)
PROTEIN_TOKENS = ("chicken", "beef", "fish", "pork", "turkey")


@dataclass(frozen=True)
class KeywordSet:
    """Importance-ranked tokens: ingredient tokens first, cooking methods last."""
    tokens: Tuple[str, ...] = ()
    category: FoodCategory = FoodCategory.UNKNOWN
    methods: Tuple[str, ...] = ()

    @property
    def primary(self) -> str:
        return self.tokens[0] if self.tokens else ""

    @property
    def protein(self) -> Optional[str]:
        for t in self.tokens:
            if t in PROTEIN_TOKENS:
                return t
        return None

    def __len__(self) -> int:
        return len(self.tokens)


@dataclass(frozen=True)
class NutrientRecord:
    """Raw nutrient amounts for one candidate. None = source did not report it."""
    calories: Optional[float] = None
    carbs: Optional[float] = None
    protein: Optional[float] = None
    fat: Optional[float] = None
    fiber: Optional[float] = None
    sugar: Optional[float] = None
    sodium: Optional[float] = None

    @property
    def completeness(self) -> float:
        present = sum(1 for n in NUTRIENT_NAMES if getattr(self, n) is not None)
        return present / len(NUTRIENT_NAMES)

    @property
    def is_empty(self) -> bool:
        return all(getattr(self, n) is None for n in NUTRIENT_NAMES)

    def scaled(self, factor: float) -> "NutrientRecord":
        values = {}
        for n in NUTRIENT_NAMES:
            v = getattr(self, n)
            values[n] = None if v is None else v * factor
        return NutrientRecord(**values)

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {n: getattr(self, n) for n in NUTRIENT_NAMES}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "NutrientRecord":
        values = {}
        for n in NUTRIENT_NAMES:
            v = d.get(n)
            values[n] = None if v is None else float(v)
        return cls(**values)


@dataclass(frozen=True)
class NutritionRange:
    min: float
    max: float
    unit: str

    def __post_init__(self) -> None:
        if self.min < 0 or self.max < 0:
            raise ValueError(f"negative nutrition range {self.min}..{self.max}")
        if self.min > self.max:
            raise ValueError(f"inverted nutrition range {self.min}..{self.max}")

    @classmethod
    def from_values(cls, values: Iterable[float], unit: str) -> "NutritionRange":
        vals = [max(0.0, float(v)) for v in values]
        if not vals:
            raise ValueError("no values for nutrition range")
        return cls(round(min(vals), 1), round(max(vals), 1), unit)

    @classmethod
    def around(cls, value: float, low: float, high: float, unit: str) -> "NutritionRange":
        """Range value*low .. value*high (used for estimates from a single point value)."""
        v = max(0.0, float(value))
        return cls(round(v * low, 1), round(v * high, 1), unit)

    def to_dict(self) -> Dict[str, Any]:
        return {"min": self.min, "max": self.max, "unit": self.unit}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "NutritionRange":
        return cls(float(d["min"]), float(d["max"]), str(d["unit"]))


@dataclass(frozen=True)
class CandidateMatch:
    """One source's proposed match before aggregation."""
    name: str
    source_id: str
    nutrients: NutrientRecord = field(default_factory=NutrientRecord)
    score: float = 0.0
    data_type: Optional[str] = None  # e.g. "Foundation", "restaurant", "branded", "generic_food"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "source_id": self.source_id,
            "nutrients": self.nutrients.to_dict(),
            "score": self.score,
            "data_type": self.data_type,
        }
