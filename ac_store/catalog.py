"""Static catalog of AC units and bookable services."""
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional


class Condition(str, Enum):
    NEW = "New"
    USED = "Used"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class Product:
    """One AC unit on sale. Prices are whole rupees."""
    id: str
    brand: str
    model: str
    price: int
    capacity: str
    warranty: str
    image_url: str
    features: str
    condition: Condition
    ai_hint: str = ""
    description: Optional[str] = None

    def __post_init__(self):
        if isinstance(self.price, bool) or not isinstance(self.price, int) or self.price < 0:
            raise ValueError(f"product {self.id}: price must be a non-negative integer, got {self.price!r}")

    @property
    def title(self) -> str:
        return f"{self.brand} {self.model}"

    @property
    def feature_list(self) -> list[str]:
        return [f.strip() for f in self.features.split(",") if f.strip()]

    def with_description(self, text: str) -> "Product":
        return replace(self, description=text)


@dataclass(frozen=True)
class Service:
    id: str
    name: str
    description: str
    price_range: str = ""
    icon: str = "Wrench"


PLACEHOLDER_IMAGE = "https://placehold.co/400x300.png"

CATALOG: tuple[Product, ...] = (
    Product(
        id="1", brand="CoolWave", model="X2000", price=25000, capacity="1.5 Ton",
        warranty="1 Year Parts, 5 Years Compressor", image_url=PLACEHOLDER_IMAGE,
        features="Inverter Technology, Smart Controls, Air Purification",
        condition=Condition.USED, ai_hint="modern air conditioner",
    ),
    Product(
        id="2", brand="ArcticBlast", model="ProSilent", price=18000, capacity="1.0 Ton",
        warranty="6 Months Seller Warranty", image_url=PLACEHOLDER_IMAGE,
        features="Quiet Operation, Energy Saver, Turbo Cool",
        condition=Condition.USED, ai_hint="compact air conditioner",
    ),
    Product(
        id="3", brand="FrostFlow", model="EcoSmart", price=32000, capacity="2.0 Ton",
        warranty="Brand New - 1 Year Manufacturer Warranty", image_url=PLACEHOLDER_IMAGE,
        features="Eco Mode, Wi-Fi Enabled, Dehumidifier",
        condition=Condition.NEW, ai_hint="large air conditioner",
    ),
    Product(
        id="4", brand="ChillMaster", model="CompactCool", price=15000, capacity="0.8 Ton",
        warranty="3 Months Warranty", image_url=PLACEHOLDER_IMAGE,
        features="Portable, Easy Install, Remote Control",
        condition=Condition.USED, ai_hint="window air conditioner",
    ),
)

_BY_ID = {p.id: p for p in CATALOG}


def get_product(product_id: str) -> Optional[Product]:
    return _BY_ID.get(product_id)


SERVICES: tuple[Service, ...] = (
    Service("1", "Filter Cleaning", "Thorough cleaning of AC filters for improved air quality and efficiency.", "₹300 - ₹500", "Wind"),
    Service("2", "Dry Service", "Comprehensive dry servicing including cleaning of coils and outer unit.", "₹500 - ₹800", "ThermometerSun"),
    Service("3", "Gas Charging", "AC refrigerant gas top-up or full recharge by certified technicians.", "₹1500 - ₹3000", "Pipette"),
    Service("4", "AC Fitting / Installation", "Professional fitting and installation of new or used AC units.", "₹1000 - ₹2000", "Settings"),
    Service("5", "Dismantling", "Safe and careful dismantling of existing AC units for relocation or disposal.", "₹500 - ₹1000", "Unplug"),
    Service("6", "Z Service (Jet Pump Service)", "Intensive cleaning using a high-pressure jet pump for deep-seated dirt.", "₹800 - ₹1200", "Wrench"),
    Service("7", "Piping", "Copper piping work for AC installations and extensions.", "Varies by length", "Pipette"),
    Service("8", "PCB Repair", "Expert repair services for AC Printed Circuit Boards (PCBs).", "Varies", "Cpu"),
    Service("9", "Compressor Replacement", "Replacement of faulty AC compressors with quality parts.", "Varies", "Replace"),
    Service("10", "AC Installation", "Standard installation services for all types of AC units, ensuring optimal performance.", "₹1200 - ₹2500", "PackagePlus"),
    Service("11", "Motor Replacement", "Replacement of blower motors, fan motors, and other AC motors.", "Varies", "Cog"),
)

SERVICE_NAMES = frozenset(s.name for s in SERVICES)
