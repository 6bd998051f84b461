"""Domain objects: items, facilities and production pipelines."""

from dataclasses import dataclass, field


@dataclass
class Item:
    """A material or product that takes part in production."""

    name: str = ""
    description: str = ""
    id: int = 0


@dataclass
class InputRequirement:
    """The quantity of an item a facility consumes per run."""

    item: Item
    quantity: int


@dataclass
class OutputDefinition:
    """The quantity of an item a facility produces per run."""

    item: Item
    quantity: int


@dataclass
class Facility:
    """A manufacturing unit that turns input items into output items over time."""

    name: str = ""
    description: str = ""
    processing_time: int = 0
    input_requirements: list[InputRequirement] = field(default_factory=list)
    output_definitions: list[OutputDefinition] = field(default_factory=list)
    id: int = 0

    def add_input_requirement(self, requirement: InputRequirement) -> None:
        self.input_requirements.append(requirement)

    def add_output_definition(self, definition: OutputDefinition) -> None:
        self.output_definitions.append(definition)


@dataclass
class PipelineNode:
    """A facility placed in a pipeline, with links to its downstream nodes."""

    facility: Facility
    next_node_ids: list[int] = field(default_factory=list)
    id: int = 0

    def add_next_node_id(self, node_id: int) -> None:
        self.next_node_ids.append(node_id)


@dataclass
class Pipeline:
    """A production line made of connected facility nodes."""

    name: str = ""
    description: str = ""
    nodes: dict[int, PipelineNode] = field(default_factory=dict)
    id: int = 0

    def add_node(self, node: PipelineNode) -> None:
        """Add a node keyed by its id; a node with the same id is replaced."""
        self.nodes[node.id] = node