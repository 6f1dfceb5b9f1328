"""Static product catalog and the industry/equipment lookup tables used for inference."""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType


@dataclass(frozen=True)
class Product:
    """Single catalog entry."""

    code: str
    name: str
    category: str
    keywords: tuple[str, ...]
    use_cases: tuple[str, ...] = ()

    def as_dict(self) -> dict[str, object]:
        return {
            "name": self.name,
            "keywords": list(self.keywords),
            "use_cases": list(self.use_cases),
            "category": self.category,
        }


@dataclass(frozen=True)
class ProductCatalog:
    """Immutable catalog loaded once at startup and passed to the inference engine.

    Iteration order of ``products`` is the tie-break order for recommendations
    with equal confidence, so categories and codes are kept in declaration order.
    """

    products: tuple[Product, ...]
    industry_products: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    equipment_products: Mapping[str, tuple[str, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "industry_products", MappingProxyType(dict(self.industry_products)))
        object.__setattr__(self, "equipment_products", MappingProxyType(dict(self.equipment_products)))

    def __iter__(self) -> Iterator[Product]:
        return iter(self.products)

    @property
    def categories(self) -> list[str]:
        seen: list[str] = []
        for product in self.products:
            if product.category not in seen:
                seen.append(product.category)
        return seen

    def find_product(self, code: str) -> Product | None:
        """Scan categories for ``code``; None when the catalog has no such product."""
        for product in self.products:
            if product.code == code:
                return product
        return None

    def products_for_industry(self, industry: str | None) -> tuple[str, ...]:
        if not industry:
            return ()
        return self.industry_products.get(industry.lower(), ())

    def by_category(self, category: str) -> dict[str, dict[str, object]]:
        return {
            product.code: product.as_dict()
            for product in self.products
            if product.category == category
        }

    def as_dict(self) -> dict[str, dict[str, dict[str, object]]]:
        return {category: self.by_category(category) for category in self.categories}


INDUSTRIAL_FUELS = "Industrial Fuels"
SPECIALTY_PRODUCTS = "Specialty Products"
OTHER_DS_PORTFOLIO = "Other DS Portfolio"

_DEFAULT_PRODUCTS: tuple[Product, ...] = (
    Product(
        "MS",
        "Motor Spirit",
        INDUSTRIAL_FUELS,
        ("motor spirit", "petrol", "gasoline", "ms"),
        ("automotive", "generators", "light vehicles"),
    ),
    Product(
        "HSD",
        "High Speed Diesel",
        INDUSTRIAL_FUELS,
        ("diesel", "hsd", "high speed diesel"),
        ("trucks", "buses", "generators", "heavy vehicles", "captive power"),
    ),
    Product(
        "LDO",
        "Light Diesel Oil",
        INDUSTRIAL_FUELS,
        ("ldo", "light diesel", "light diesel oil"),
        ("furnaces", "boilers", "kilns", "industrial heating"),
    ),
    Product(
        "FO",
        "Furnace Oil",
        INDUSTRIAL_FUELS,
        ("furnace oil", "fo", "fuel oil", "heavy fuel"),
        ("boilers", "furnaces", "power generation", "industrial heating", "captive power"),
    ),
    Product(
        "LSHS",
        "Low Sulphur Heavy Stock",
        INDUSTRIAL_FUELS,
        ("lshs", "low sulphur", "heavy stock"),
        ("power plants", "marine", "industrial boilers"),
    ),
    Product(
        "SKO",
        "Superior Kerosene Oil",
        INDUSTRIAL_FUELS,
        ("kerosene", "sko", "superior kerosene"),
        ("heating", "lighting", "industrial applications"),
    ),
    Product(
        "Hexane",
        "Hexane",
        SPECIALTY_PRODUCTS,
        ("hexane", "n-hexane"),
        ("solvent extraction", "oil extraction", "edible oil", "vegetable oil extraction"),
    ),
    Product(
        "Solvent 1425",
        "Solvent 1425",
        SPECIALTY_PRODUCTS,
        ("solvent 1425", "solvent", "industrial solvent"),
        ("paint", "coating", "printing ink", "adhesives"),
    ),
    Product(
        "MTO",
        "Mineral Turpentine Oil",
        SPECIALTY_PRODUCTS,
        ("turpentine", "mto", "mineral turpentine", "mto 2445"),
        ("paint thinner", "solvent", "cleaning agent"),
    ),
    Product(
        "JBO",
        "Jute Batch Oil",
        SPECIALTY_PRODUCTS,
        ("jute batch oil", "jbo", "jute oil"),
        ("jute processing", "jute mills", "textile"),
    ),
    Product(
        "Bitumen",
        "Bitumen",
        OTHER_DS_PORTFOLIO,
        ("bitumen", "asphalt", "road construction"),
        ("road construction", "highways", "infrastructure", "waterproofing"),
    ),
    Product(
        "Marine Bunker Fuels",
        "Marine Bunker Fuels",
        OTHER_DS_PORTFOLIO,
        ("bunker", "marine fuel", "shipping fuel", "vessel fuel"),
        ("shipping", "vessels", "maritime", "ports"),
    ),
    Product(
        "Sulphur",
        "Sulphur",
        OTHER_DS_PORTFOLIO,
        ("sulphur", "sulfur", "molten sulphur"),
        ("fertilizer", "chemical", "pharmaceutical"),
    ),
    Product(
        "Propylene",
        "Propylene",
        OTHER_DS_PORTFOLIO,
        ("propylene", "propene"),
        ("petrochemical", "plastic", "chemical manufacturing"),
    ),
)

_DEFAULT_INDUSTRY_PRODUCTS: dict[str, tuple[str, ...]] = {
    "power": ("FO", "LSHS", "HSD", "LDO"),
    "chemicals": ("FO", "LDO", "Hexane", "Solvent 1425", "Propylene"),
    "fertilizers": ("FO", "Sulphur", "HSD"),
    "shipping": ("Marine Bunker Fuels", "LSHS"),
    "mining": ("HSD", "FO", "LDO"),
    "textile": ("JBO", "FO", "LDO"),
    "jute": ("JBO",),
    "edible_oil": ("Hexane",),
    "paint": ("Solvent 1425", "MTO"),
    "road_construction": ("Bitumen", "HSD"),
    "steel": ("FO", "LDO"),
    "cement": ("FO", "LDO", "Bitumen"),
}

_DEFAULT_EQUIPMENT_PRODUCTS: dict[str, tuple[str, ...]] = {
    "boiler": ("FO", "LDO", "LSHS"),
    "furnace": ("FO", "LDO"),
    "genset": ("HSD", "FO"),
    "generator": ("HSD", "FO"),
    "captive power": ("FO", "HSD", "LSHS"),
    "diesel generator": ("HSD",),
    "power plant": ("FO", "LSHS"),
    "extraction plant": ("Hexane",),
    "jute mill": ("JBO",),
    "solvent plant": ("Hexane", "Solvent 1425"),
}

DEFAULT_CATALOG = ProductCatalog(
    products=_DEFAULT_PRODUCTS,
    industry_products=_DEFAULT_INDUSTRY_PRODUCTS,
    equipment_products=_DEFAULT_EQUIPMENT_PRODUCTS,
)
