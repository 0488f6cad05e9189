"""Entity graph shared by the test suite."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from uuid import UUID

from cqrs_ddd_odm import ModelBuilder, ModelMetadata


class OrderStatus(Enum):
    PENDING = 1
    SHIPPED = 2
    CANCELLED = 3


@dataclass
class Address:
    street: str
    city: str
    zip_code: str | None = None


@dataclass
class Location:
    latitude: float
    longitude: float


@dataclass
class Ubicacion:
    latitud: float
    longitud: float


@dataclass
class Money:
    amount: Decimal
    currency: str = "EUR"


@dataclass(eq=False)
class Customer:
    id: str | None = None
    name: str = ""
    email: str | None = None
    addresses: dict[str, Address] = field(default_factory=dict)
    orders: list[Order] = field(default_factory=list)


@dataclass(eq=False)
class Order:
    id: str | None = None
    number: str = ""
    total: Decimal = Decimal("0")
    status: OrderStatus = OrderStatus.PENDING
    placed_at: datetime | None = None
    notes: str | None = None
    tags: list[str] = field(default_factory=list)
    shipping_address: Address | None = None
    customer: Customer | None = None
    customer_id: str | None = None
    lines: list[OrderLine] = field(default_factory=list)


@dataclass(eq=False)
class OrderLine:
    id: str | None = None
    product: str = ""
    quantity: int = 0
    unit_price: Money | None = None
    order: Order | None = None
    notes: list[LineNote] = field(default_factory=list)


@dataclass(eq=False)
class LineNote:
    id: str | None = None
    text: str = ""


@dataclass(eq=False)
class Topping:
    id: str | None = None
    name: str = ""


@dataclass(eq=False)
class Pizza:
    id: str | None = None
    name: str = ""
    toppings: list[Topping] = field(default_factory=list)


@dataclass(eq=False)
class PizzaTopping:
    """Link row between pizzas and toppings."""

    id: str | None = None
    pizza_id: str | None = None
    topping_id: str | None = None


@dataclass(eq=False)
class Store:
    id: str | None = None
    name: str = ""
    location: Location | None = None
    branches: list[Location] = field(default_factory=list)
    opening_delay: timedelta | None = None
    external_id: UUID | None = None


@dataclass(frozen=True, eq=False)
class Product:
    """Read-only entity: every member comes through the constructor."""

    id: str
    name: str
    price: Decimal


class Ticket:
    """Entity whose tag set is only reachable through a private field."""

    id: str | None
    title: str
    labels: set[str]

    def __init__(self, id: str | None = None, title: str = "") -> None:
        self.id = id
        self.title = title
        self._labels: set[str] = set()

    @property
    def labels(self) -> set[str]:
        return set(self._labels)

    def label(self, *names: str) -> None:
        self._labels.update(names)


@dataclass(eq=False)
class Department:
    id: str | None = None
    name: str = ""
    employees: list[Employee] = field(default_factory=list)


@dataclass(eq=False)
class Employee:
    id: str | None = None
    name: str = ""


def build_model() -> ModelMetadata:
    builder = ModelBuilder()
    builder.entity(Customer)
    builder.entity(Order).persist_null("notes")
    builder.entity(Order).sub_collection("lines", OrderLine)
    builder.entity(OrderLine).sub_collection("notes", LineNote)
    builder.entity(LineNote)
    builder.entity(Topping)
    builder.entity(Pizza).many_to_many("toppings", Topping)
    builder.entity(PizzaTopping).has_foreign_key(
        "pizza_id", principal=Pizza
    ).has_foreign_key("topping_id", principal=Topping)
    builder.entity(Store)
    builder.entity(Product)
    builder.entity(Ticket).backing_field("labels", "_labels")
    builder.entity(Department)
    builder.entity(Employee).shadow_property("department_id").has_foreign_key(
        "department_id", principal=Department
    )
    return builder.build()
