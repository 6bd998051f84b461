"""Storage records for the domain objects and the schema of their tables."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import ClassVar

from fasim.models import (
    Facility,
    InputRequirement,
    Item,
    OutputDefinition,
    Pipeline,
    PipelineNode,
)

_BASE_COLUMNS = (
    "id INTEGER PRIMARY KEY AUTOINCREMENT",
    "created_at DATETIME",
    "updated_at DATETIME",
    "deleted_at DATETIME",
)


def _schema(
    table: str,
    columns: tuple[str, ...],
    *,
    unique: tuple[str, ...] = (),
    indexes: tuple[tuple[str, str], ...] = (),
) -> tuple[str, ...]:
    body = ", ".join(_BASE_COLUMNS + columns)
    statements = [f"CREATE TABLE IF NOT EXISTS {table} ({body})"]
    statements += [
        f"CREATE UNIQUE INDEX IF NOT EXISTS idx_{table}_{column} ON {table}({column})"
        for column in unique
    ]
    statements += [
        f"CREATE INDEX IF NOT EXISTS {name} ON {table}({cols})" for name, cols in indexes
    ]
    statements.append(
        f"CREATE INDEX IF NOT EXISTS idx_{table}_deleted_at ON {table}(deleted_at)"
    )
    return tuple(statements)


@dataclass(kw_only=True)
class _Record:
    created_at: datetime | None = None
    updated_at: datetime | None = None
    deleted_at: datetime | None = None


@dataclass
class ItemEntity(_Record):
    """A row of the items table."""

    table_name: ClassVar[str] = "items"
    schema: ClassVar[tuple[str, ...]] = _schema(
        "items", ("name TEXT NOT NULL", "description TEXT"), unique=("name",)
    )

    name: str = ""
    description: str = ""
    id: int = 0

    def to_model(self) -> Item:
        return Item(name=self.name, description=self.description, id=self.id)

    @classmethod
    def from_model(cls, model: Item) -> "ItemEntity":
        return cls(name=model.name, description=model.description, id=model.id)


@dataclass
class InputRequirementEntity(_Record):
    """A row linking a facility to an item it consumes."""

    table_name: ClassVar[str] = "input_requirements"
    schema: ClassVar[tuple[str, ...]] = _schema(
        "input_requirements",
        (
            "facility_id INTEGER",
            "item_id INTEGER",
            "quantity INTEGER",
            "CONSTRAINT fk_input_requirements_item FOREIGN KEY (item_id) REFERENCES items(id)",
            "CONSTRAINT fk_facilities_input_requirements FOREIGN KEY (facility_id) "
            "REFERENCES facilities(id)",
        ),
        indexes=(("idx_facility_item", "facility_id, item_id"),),
    )

    facility_id: int = 0
    item_id: int = 0
    quantity: int = 0
    item: ItemEntity = field(default_factory=ItemEntity)
    id: int = 0


@dataclass
class OutputDefinitionEntity(_Record):
    """A row linking a facility to an item it produces."""

    table_name: ClassVar[str] = "output_definitions"
    schema: ClassVar[tuple[str, ...]] = _schema(
        "output_definitions",
        (
            "facility_id INTEGER",
            "item_id INTEGER",
            "quantity INTEGER",
            "CONSTRAINT fk_output_definitions_item FOREIGN KEY (item_id) REFERENCES items(id)",
            "CONSTRAINT fk_facilities_output_definitions FOREIGN KEY (facility_id) "
            "REFERENCES facilities(id)",
        ),
        indexes=(("idx_facility_item_out", "facility_id, item_id"),),
    )

    facility_id: int = 0
    item_id: int = 0
    quantity: int = 0
    item: ItemEntity = field(default_factory=ItemEntity)
    id: int = 0


@dataclass
class FacilityEntity(_Record):
    """A row of the facilities table with its input and output rows."""

    table_name: ClassVar[str] = "facilities"
    schema: ClassVar[tuple[str, ...]] = _schema(
        "facilities",
        ("name TEXT NOT NULL", "description TEXT", "processing_time INTEGER"),
        unique=("name",),
    )

    name: str = ""
    description: str = ""
    processing_time: int = 0
    input_requirements: list[InputRequirementEntity] = field(default_factory=list)
    output_definitions: list[OutputDefinitionEntity] = field(default_factory=list)
    id: int = 0

    def to_model(self) -> Facility:
        return Facility(
            name=self.name,
            description=self.description,
            processing_time=self.processing_time,
            input_requirements=[
                InputRequirement(req.item.to_model(), req.quantity)
                for req in self.input_requirements
            ],
            output_definitions=[
                OutputDefinition(out.item.to_model(), out.quantity)
                for out in self.output_definitions
            ],
            id=self.id,
        )

    @classmethod
    def from_model(cls, model: Facility) -> "FacilityEntity":
        return cls(
            name=model.name,
            description=model.description,
            processing_time=model.processing_time,
            input_requirements=[
                InputRequirementEntity(
                    facility_id=model.id, item_id=req.item.id, quantity=req.quantity
                )
                for req in model.input_requirements
            ],
            output_definitions=[
                OutputDefinitionEntity(
                    facility_id=model.id, item_id=out.item.id, quantity=out.quantity
                )
                for out in model.output_definitions
            ],
            id=model.id,
        )


@dataclass
class PipelineNodeConnectionEntity(_Record):
    """A row linking one pipeline node to a downstream node."""

    table_name: ClassVar[str] = "pipeline_node_connections"
    schema: ClassVar[tuple[str, ...]] = _schema(
        "pipeline_node_connections",
        (
            "source_node_id INTEGER",
            "target_node_id INTEGER",
            "CONSTRAINT fk_pipeline_node_connections_source_node FOREIGN KEY (source_node_id) "
            "REFERENCES pipeline_nodes(id)",
            "CONSTRAINT fk_pipeline_node_connections_target_node FOREIGN KEY (target_node_id) "
            "REFERENCES pipeline_nodes(id)",
        ),
        indexes=(
            ("idx_pipeline_node_connections_source_node_id", "source_node_id"),
            ("idx_pipeline_node_connections_target_node_id", "target_node_id"),
        ),
    )

    source_node_id: int = 0
    target_node_id: int = 0
    id: int = 0


@dataclass
class PipelineNodeEntity(_Record):
    """A row placing a facility inside a pipeline."""

    table_name: ClassVar[str] = "pipeline_nodes"
    schema: ClassVar[tuple[str, ...]] = _schema(
        "pipeline_nodes",
        (
            "pipeline_id INTEGER",
            "facility_id INTEGER",
            "CONSTRAINT fk_pipeline_nodes_facility FOREIGN KEY (facility_id) "
            "REFERENCES facilities(id)",
            "CONSTRAINT fk_pipelines_nodes FOREIGN KEY (pipeline_id) REFERENCES pipelines(id)",
        ),
        indexes=(("idx_pipeline_facility", "pipeline_id, facility_id"),),
    )

    pipeline_id: int = 0
    facility_id: int = 0
    facility: FacilityEntity = field(default_factory=FacilityEntity)
    next_nodes: list[PipelineNodeConnectionEntity] = field(default_factory=list)
    id: int = 0

    def next_node_ids(self) -> list[int]:
        return [conn.target_node_id for conn in self.next_nodes]

    def to_model(self) -> PipelineNode:
        return PipelineNode(
            facility=self.facility.to_model(),
            next_node_ids=self.next_node_ids(),
            id=self.id,
        )


@dataclass
class PipelineEntity(_Record):
    """A row of the pipelines table with its nodes."""

    table_name: ClassVar[str] = "pipelines"
    schema: ClassVar[tuple[str, ...]] = _schema(
        "pipelines", ("name TEXT NOT NULL", "description TEXT"), unique=("name",)
    )

    name: str = ""
    description: str = ""
    nodes: list[PipelineNodeEntity] = field(default_factory=list)
    id: int = 0

    def to_model(self) -> Pipeline:
        nodes = {}
        for node in self.nodes:
            model = node.to_model()
            nodes[model.id] = model
        return Pipeline(
            name=self.name, description=self.description, nodes=nodes, id=self.id
        )

    @classmethod
    def from_model(cls, model: Pipeline) -> "PipelineEntity":
        """Build the record tree; raises ValueError for links to unknown nodes."""
        by_id = {
            key: PipelineNodeEntity(
                pipeline_id=model.id, facility_id=node.facility.id, id=node.id
            )
            for key, node in model.nodes.items()
        }
        for key, node in model.nodes.items():
            source = by_id[key]
            for target_id in node.next_node_ids:
                target = by_id.get(target_id)
                if target is None:
                    raise ValueError(f"node {key} links to unknown node {target_id}")
                source.next_nodes.append(
                    PipelineNodeConnectionEntity(
                        source_node_id=source.id, target_node_id=target.id
                    )
                )
        return cls(
            name=model.name,
            description=model.description,
            nodes=list(by_id.values()),
            id=model.id,
        )


def get_models() -> list[type]:
    """All record types, in the order their tables are created."""
    return [
        ItemEntity,
        FacilityEntity,
        InputRequirementEntity,
        OutputDefinitionEntity,
        PipelineEntity,
        PipelineNodeEntity,
        PipelineNodeConnectionEntity,
    ]