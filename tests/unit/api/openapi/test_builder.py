"""Unit tests for typedapi/api/openapi/builder.py."""

import enum
from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Any, Literal
from uuid import UUID

import pytest
from pydantic import BaseModel, Field, create_model

from typedapi.api.introspection import DiscriminatorValue, model_fields
from typedapi.api.openapi.builder import (
    SchemaBuilder,
    apply_constraints,
    discriminator_of,
    make_nullable,
    primitive_schema,
)
from typedapi.api.openapi.models import Components, Schema
from typedapi.core.exceptions import ConfigurationError


class Color(enum.Enum):
    RED = "red"
    GREEN = "green"


class Address(BaseModel):
    """Postal address.

    Used for shipping and billing.
    """

    street: str
    city: str | None = None


class Customer(BaseModel):
    name: str = Field(alias="Name", min_length=1, max_length=50, description="Full name")
    age: int | None = Field(default=None, ge=0, le=150)
    tags: list[str] = Field(default_factory=list, max_length=5)
    address: Address | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)
    scores: dict[str, int] = Field(default_factory=dict)
    color: Color = Color.RED
    order: Literal["asc", "desc"] = "asc"


class TreeNode(BaseModel):
    value: int
    children: list["TreeNode"] = []


class Card(BaseModel):
    kind: Annotated[str, DiscriminatorValue("card")] = "card"
    last4: str


class Bank(BaseModel):
    kind: Annotated[str, DiscriminatorValue("bank")] = "bank"
    iban: str


class Wallet(BaseModel):
    provider: str


class Ambiguous(BaseModel):
    kind: Annotated[str, DiscriminatorValue("a")] = "a"
    other: Annotated[str, DiscriminatorValue("b")] = "b"


type Payment = Card | Bank


class Envelope(BaseModel):
    class Meta(BaseModel):
        trace: str

    meta: Meta
    payment: Payment
    backup: Payment | None = None


@pytest.fixture
def builder() -> SchemaBuilder:
    return SchemaBuilder(Components())


@pytest.mark.unit
class TestNullable:
    """Test nullable schema forms."""

    def test_scalar_gets_type_list(self) -> None:
        """Test that a typed schema becomes a type list with null."""
        schema = make_nullable(Schema(type="string", format="uuid"))

        assert schema.to_dict() == {"type": ["string", "null"], "format": "uuid"}

    def test_reference_gets_any_of(self) -> None:
        """Test that a reference is wrapped in anyOf with null."""
        schema = make_nullable(Schema(ref="#/components/schemas/Address"))

        assert schema.to_dict() == {
            "anyOf": [{"$ref": "#/components/schemas/Address"}, {"type": "null"}]
        }

    def test_object_gets_any_of(self) -> None:
        """Test that an object schema is wrapped in anyOf with null."""
        schema = make_nullable(Schema(type="object", properties={}))

        assert len(schema.any_of or []) == 2

    def test_already_nullable_is_unchanged(self) -> None:
        """Test that a schema already allowing null is returned as is."""
        schema = Schema(type=["integer", "null"])

        assert make_nullable(schema) is schema

    def test_none_is_null_schema(self) -> None:
        """Test that NoneType maps to the null schema."""
        assert make_nullable(None).to_dict() == {"type": "null"}

    def test_untyped_schema_gets_any_of(self) -> None:
        """Test that an empty schema is wrapped in anyOf with null."""
        assert make_nullable(Schema()).to_dict() == {"anyOf": [{}, {"type": "null"}]}


@pytest.mark.unit
class TestPrimitives:
    """Test scalar mappings."""

    @pytest.mark.parametrize(
        ("tp", "expected"),
        [
            (bool, {"type": "boolean"}),
            (int, {"type": "integer"}),
            (float, {"type": "number"}),
            (str, {"type": "string"}),
            (Decimal, {"type": "string", "format": "decimal"}),
            (UUID, {"type": "string", "format": "uuid"}),
            (datetime, {"type": "string", "format": "date-time"}),
            (date, {"type": "string", "format": "date"}),
            (bytes, {"type": "string", "format": "binary"}),
        ],
    )
    def test_primitive_schema(self, tp: type, expected: dict[str, str]) -> None:
        """Test the JSON type and format of each primitive."""
        assert primitive_schema(tp).to_dict() == expected

    def test_unsupported_type_is_described(self, builder: SchemaBuilder) -> None:
        """Test that unsupported types become described objects."""
        assert builder.schema_for(complex).to_dict() == {
            "type": "object",
            "description": "Unsupported type: complex",
        }

    def test_any_is_empty_schema(self, builder: SchemaBuilder) -> None:
        """Test that Any maps to the empty schema."""
        assert builder.schema_for(Any).to_dict() == {}


@pytest.mark.unit
class TestModels:
    """Test object schemas and component registration."""

    def test_named_model_is_referenced(self, builder: SchemaBuilder) -> None:
        """Test that a named model is emitted as a component reference."""
        schema = builder.schema_for(Customer)

        assert schema.to_dict() == {"$ref": "#/components/schemas/Customer"}
        assert "Customer" in builder.components.schemas
        assert "Address" in builder.components.schemas

    def test_object_schema_properties(self, builder: SchemaBuilder) -> None:
        """Test properties and required fields of a model schema."""
        builder.schema_for(Customer)
        customer = builder.components.schemas["Customer"].to_dict()
        properties = customer["properties"]

        assert customer["type"] == "object"
        assert customer["title"] == "Customer"
        assert customer["required"] == ["Name"]
        assert properties["Name"] == {
            "type": "string",
            "description": "Full name",
            "minLength": 1,
            "maxLength": 50,
        }
        assert properties["age"] == {
            "type": ["integer", "null"],
            "minimum": 0,
            "maximum": 150,
        }
        assert properties["tags"]["type"] == "array"
        assert properties["tags"]["maxItems"] == 5
        assert properties["tags"]["items"] == {"type": "string"}
        assert properties["tags"]["title"] == "[]str"
        assert properties["address"] == {
            "anyOf": [{"$ref": "#/components/schemas/Address"}, {"type": "null"}]
        }
        assert properties["attributes"] == {"type": "object", "additionalProperties": True}
        assert properties["scores"] == {
            "type": "object",
            "additionalProperties": {"type": "integer"},
        }
        assert properties["color"] == {"type": "string", "enum": ["red", "green"]}
        assert properties["order"] == {"type": "string", "enum": ["asc", "desc"]}

    def test_docstring_becomes_description(self, builder: SchemaBuilder) -> None:
        """Test that a model docstring becomes the schema description."""
        builder.schema_for(Address)

        assert builder.components.schemas["Address"].description == (
            "Postal address.\n\nUsed for shipping and billing."
        )

    def test_undocumented_model_has_no_description(self, builder: SchemaBuilder) -> None:
        """Test that models without a docstring get no description."""
        builder.schema_for(Wallet)

        assert builder.components.schemas["Wallet"].description is None

    def test_model_registered_once(self, builder: SchemaBuilder) -> None:
        """Test that repeated use of a model registers one component."""
        first = builder.schema_for(Address)
        second = builder.schema_for(Address | None)

        assert first.ref == "#/components/schemas/Address"
        assert second.any_of is not None
        assert second.any_of[0].ref == first.ref
        assert list(builder.components.schemas) == ["Address"]

    def test_recursive_model(self, builder: SchemaBuilder) -> None:
        """Test that a self-referencing model resolves to its own component."""
        builder.schema_for(TreeNode)
        tree = builder.components.schemas["TreeNode"].to_dict()

        assert tree["properties"]["children"]["items"] == {
            "$ref": "#/components/schemas/TreeNode"
        }
        assert tree["properties"]["children"]["title"] == "[]TreeNode"

    def test_anonymous_model_is_inlined(self, builder: SchemaBuilder) -> None:
        """Test that a nested section model is inlined."""
        schema = builder.schema_for(Envelope.Meta)

        assert schema.to_dict() == {
            "type": "object",
            "properties": {"trace": {"type": "string"}},
            "required": ["trace"],
        }
        assert builder.components.schemas == {}

    def test_colliding_names_get_distinct_components(self, builder: SchemaBuilder) -> None:
        """Test that same-named models get module-qualified names."""
        first = create_model("Invoice", __module__="app.billing", number=(str, ...))
        second = create_model("Invoice", __module__="app.shipping", tracking=(str, ...))

        first_ref = builder.schema_for(first).ref
        second_ref = builder.schema_for(second).ref
        schemas = builder.components.schemas

        assert first_ref == "#/components/schemas/Invoice"
        assert second_ref == "#/components/schemas/ShippingInvoice"
        assert list(schemas["Invoice"].properties or {}) == ["number"]
        assert list(schemas["ShippingInvoice"].properties or {}) == ["tracking"]

    def test_third_collision_gets_suffix(self, builder: SchemaBuilder) -> None:
        """Test that a further collision gets a numeric suffix."""
        models = [
            create_model("Invoice", __module__="app.billing", a=(str, ...)),
            create_model("Invoice", __module__="app.billing", b=(str, ...)),
            create_model("Invoice", __module__="other.billing", c=(str, ...)),
        ]

        refs = [builder.schema_for(model).ref for model in models]

        assert refs == [
            "#/components/schemas/Invoice",
            "#/components/schemas/BillingInvoice",
            "#/components/schemas/BillingInvoice2",
        ]


@pytest.mark.unit
class TestUnions:
    """Test oneOf and discriminator synthesis."""

    def test_anonymous_union_with_discriminator(self, builder: SchemaBuilder) -> None:
        """Test oneOf with a discriminator mapping for an inline union."""
        schema = builder.schema_for(Card | Bank).to_dict()

        assert schema["oneOf"] == [
            {"$ref": "#/components/schemas/Card"},
            {"$ref": "#/components/schemas/Bank"},
        ]
        assert schema["discriminator"] == {
            "propertyName": "kind",
            "mapping": {
                "card": "#/components/schemas/Card",
                "bank": "#/components/schemas/Bank",
            },
        }

    def test_discriminator_field_is_enum(self, builder: SchemaBuilder) -> None:
        """Test that a discriminator field is documented as a one-value enum."""
        builder.schema_for(Card)

        kind = builder.components.schemas["Card"].to_dict()["properties"]["kind"]
        assert kind == {"type": "string", "enum": ["card"]}

    def test_partial_discriminator_maps_marked_branches(self, builder: SchemaBuilder) -> None:
        """Test that only marked branches appear in the mapping."""
        schema = builder.schema_for(Card | Wallet).to_dict()

        assert "discriminator" in schema
        assert schema["discriminator"]["mapping"] == {"card": "#/components/schemas/Card"}

    def test_scalar_union(self, builder: SchemaBuilder) -> None:
        """Test that a union of scalars becomes oneOf."""
        schema = builder.schema_for(int | str).to_dict()

        assert schema == {"oneOf": [{"type": "integer"}, {"type": "string"}]}

    def test_named_union_is_a_component(self, builder: SchemaBuilder) -> None:
        """Test that a named union alias is registered as a component."""
        builder.schema_for(Envelope)
        schemas = builder.components.schemas
        envelope = schemas["Envelope"].to_dict()

        assert envelope["properties"]["payment"] == {"$ref": "#/components/schemas/Payment"}
        assert envelope["properties"]["backup"] == {
            "anyOf": [{"$ref": "#/components/schemas/Payment"}, {"type": "null"}]
        }
        payment = schemas["Payment"].to_dict()
        assert payment["title"] == "Payment"
        assert payment["discriminator"]["propertyName"] == "kind"
        assert len(payment["oneOf"]) == 2

    def test_multiple_discriminators_rejected(self) -> None:
        """Test that two discriminator fields in one model are rejected."""
        with pytest.raises(ConfigurationError, match="more than one discriminator"):
            discriminator_of(Ambiguous)


@pytest.mark.unit
class TestConstraints:
    """Test facet translation."""

    def test_constraints_follow_schema_type(self) -> None:
        """Test that numeric constraints map to numeric keywords."""
        (spec,) = model_fields(create_model("Bounded", value=(int, Field(gt=1, lt=9, multiple_of=2))))

        schema = apply_constraints(Schema(type="integer"), spec.constraints)

        assert schema.to_dict() == {
            "type": "integer",
            "exclusiveMinimum": 1,
            "exclusiveMaximum": 9,
            "multipleOf": 2,
        }

    def test_string_facets_ignored_on_numbers(self) -> None:
        """Test that string facets are dropped on number schemas."""
        (spec,) = model_fields(create_model("Named", value=(str, Field(min_length=2))))

        schema = apply_constraints(Schema(type="number"), spec.constraints)

        assert schema.to_dict() == {"type": "number"}

    def test_decimal_bounds_are_numbers(self) -> None:
        """Test that Decimal bounds are emitted as floats."""
        (spec,) = model_fields(
            create_model("Price", value=(float, Field(ge=Decimal("0.5"))))
        )

        schema = apply_constraints(Schema(type="number"), spec.constraints)

        assert schema.minimum == 0.5

    def test_pattern(self, builder: SchemaBuilder) -> None:
        """Test that a string pattern is carried into the schema."""
        model = create_model("Coded", code=(str, Field(pattern=r"^[A-Z]{3}$")))
        (spec,) = model_fields(model)

        assert builder.field_schema(spec).to_dict() == {
            "type": "string",
            "pattern": "^[A-Z]{3}$",
        }
