"""SQLite-backed storage for items, facilities and pipelines."""

from dataclasses import dataclass, fields
from datetime import datetime, timezone
from typing import Any

from fasim.db import Database, RecordNotFoundError
from fasim.entities import (
    FacilityEntity,
    InputRequirementEntity,
    ItemEntity,
    OutputDefinitionEntity,
    PipelineEntity,
    PipelineNodeConnectionEntity,
    PipelineNodeEntity,
)
from fasim.models import Facility, Item, Pipeline

_NODES_OF_PIPELINE = "SELECT id FROM pipeline_nodes WHERE pipeline_id = ?"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat(sep=" ")


def _assign(target: Any, source: Any) -> None:
    """Copy every dataclass field of ``source`` onto ``target``."""
    for f in fields(source):
        setattr(target, f.name, getattr(source, f.name))


def _insert(db: Database, table: str, values: dict[str, Any]) -> int:
    """Insert a row, letting SQLite choose the id when it is zero; return the id."""
    row = {key: value for key, value in values.items() if not (key == "id" and not value)}
    now = _now()
    row["created_at"] = now
    row["updated_at"] = now
    columns = ", ".join(row)
    marks = ", ".join("?" for _ in row)
    cursor = db.execute(
        f"INSERT INTO {table} ({columns}) VALUES ({marks})", tuple(row.values())
    )
    return int(cursor.lastrowid)


def _exists(db: Database, table: str, record_id: int) -> bool:
    row = db.execute(
        f"SELECT COUNT(*) FROM {table} WHERE id = ? AND deleted_at IS NULL",
        (record_id,),
    ).fetchone()
    return row[0] > 0


def _soft_delete(db: Database, table: str, where: str, params: tuple) -> int:
    cursor = db.execute(
        f"UPDATE {table} SET deleted_at = ? WHERE {where} AND deleted_at IS NULL",
        (_now(), *params),
    )
    return cursor.rowcount


def _load_links(db: Database, entity_type: type, facility_id: int) -> list:
    rows = db.execute(
        f"SELECT l.id, l.facility_id, l.item_id, l.quantity, "
        f"i.id AS i_id, i.name AS i_name, i.description AS i_description "
        f"FROM {entity_type.table_name} l "
        f"LEFT JOIN items i ON i.id = l.item_id AND i.deleted_at IS NULL "
        f"WHERE l.facility_id = ? AND l.deleted_at IS NULL ORDER BY l.id",
        (facility_id,),
    ).fetchall()
    return [
        entity_type(
            facility_id=row["facility_id"],
            item_id=row["item_id"],
            quantity=row["quantity"],
            item=(
                ItemEntity(
                    name=row["i_name"],
                    description=row["i_description"] or "",
                    id=row["i_id"],
                )
                if row["i_id"] is not None
                else ItemEntity()
            ),
            id=row["id"],
        )
        for row in rows
    ]


def _load_facilities(
    db: Database, where: str = "", params: tuple = ()
) -> list[FacilityEntity]:
    rows = db.execute(
        "SELECT id, name, description, processing_time FROM facilities "
        f"WHERE deleted_at IS NULL{where} ORDER BY id",
        params,
    ).fetchall()
    return [
        FacilityEntity(
            name=row["name"],
            description=row["description"] or "",
            processing_time=row["processing_time"] or 0,
            input_requirements=_load_links(db, InputRequirementEntity, row["id"]),
            output_definitions=_load_links(db, OutputDefinitionEntity, row["id"]),
            id=row["id"],
        )
        for row in rows
    ]


def _load_node(db: Database, row: Any) -> PipelineNodeEntity:
    facilities = _load_facilities(db, " AND id = ?", (row["facility_id"],))
    connections = db.execute(
        "SELECT id, source_node_id, target_node_id FROM pipeline_node_connections "
        "WHERE source_node_id = ? AND deleted_at IS NULL ORDER BY id",
        (row["id"],),
    ).fetchall()
    return PipelineNodeEntity(
        pipeline_id=row["pipeline_id"],
        facility_id=row["facility_id"],
        facility=facilities[0] if facilities else FacilityEntity(),
        next_nodes=[
            PipelineNodeConnectionEntity(
                source_node_id=conn["source_node_id"],
                target_node_id=conn["target_node_id"],
                id=conn["id"],
            )
            for conn in connections
        ],
        id=row["id"],
    )


def _load_pipelines(
    db: Database, where: str = "", params: tuple = ()
) -> list[PipelineEntity]:
    rows = db.execute(
        "SELECT id, name, description FROM pipelines "
        f"WHERE deleted_at IS NULL{where} ORDER BY id",
        params,
    ).fetchall()
    pipelines = []
    for row in rows:
        node_rows = db.execute(
            "SELECT id, pipeline_id, facility_id FROM pipeline_nodes "
            "WHERE pipeline_id = ? AND deleted_at IS NULL ORDER BY id",
            (row["id"],),
        ).fetchall()
        pipelines.append(
            PipelineEntity(
                name=row["name"],
                description=row["description"] or "",
                nodes=[_load_node(db, node_row) for node_row in node_rows],
                id=row["id"],
            )
        )
    return pipelines


class ItemRepository:
    """Create, read, update and delete items."""

    def __init__(self, database: Database) -> None:
        self.database = database

    def create(self, item: Item) -> None:
        """Store a new item and set its id."""
        entity = ItemEntity.from_model(item)
        with self.database.transaction() as db:
            new_id = _insert(
                db,
                ItemEntity.table_name,
                {"id": entity.id, "name": entity.name, "description": entity.description},
            )
        item.id = new_id

    def get(self, item_id: int) -> Item | None:
        """Return the item with this id, or None."""
        row = self.database.execute(
            "SELECT id, name, description FROM items WHERE id = ? AND deleted_at IS NULL",
            (item_id,),
        ).fetchone()
        if row is None:
            return None
        return ItemEntity(
            name=row["name"], description=row["description"] or "", id=row["id"]
        ).to_model()

    def list(self) -> list[Item]:
        rows = self.database.execute(
            "SELECT id, name, description FROM items WHERE deleted_at IS NULL ORDER BY id"
        ).fetchall()
        return [
            ItemEntity(
                name=row["name"], description=row["description"] or "", id=row["id"]
            ).to_model()
            for row in rows
        ]

    def update(self, item: Item) -> None:
        """Change name and description; raises RecordNotFoundError if absent."""
        entity = ItemEntity.from_model(item)
        cursor = self.database.execute(
            "UPDATE items SET name = ?, description = ?, updated_at = ? "
            "WHERE id = ? AND deleted_at IS NULL",
            (entity.name, entity.description, _now(), item.id),
        )
        if cursor.rowcount == 0:
            raise RecordNotFoundError()

    def delete(self, item_id: int) -> None:
        """Remove an item; raises RecordNotFoundError if absent."""
        if _soft_delete(self.database, ItemEntity.table_name, "id = ?", (item_id,)) == 0:
            raise RecordNotFoundError()


class FacilityRepository:
    """Create, read, update and delete facilities with their inputs and outputs."""

    def __init__(self, database: Database) -> None:
        self.database = database

    @staticmethod
    def _insert_links(db: Database, entity: FacilityEntity, facility_id: int) -> None:
        for link in [*entity.input_requirements, *entity.output_definitions]:
            _insert(
                db,
                link.table_name,
                {
                    "facility_id": facility_id,
                    "item_id": link.item_id,
                    "quantity": link.quantity,
                },
            )

    def create(self, facility: Facility) -> None:
        """Store a new facility and refresh it from what was stored."""
        entity = FacilityEntity.from_model(facility)
        with self.database.transaction() as db:
            new_id = _insert(
                db,
                FacilityEntity.table_name,
                {
                    "id": entity.id,
                    "name": entity.name,
                    "description": entity.description,
                    "processing_time": entity.processing_time,
                },
            )
            self._insert_links(db, entity, new_id)
            stored = _load_facilities(db, " AND id = ?", (new_id,))[0]
        _assign(facility, stored.to_model())

    def get(self, facility_id: int) -> Facility | None:
        found = _load_facilities(self.database, " AND id = ?", (facility_id,))
        return found[0].to_model() if found else None

    def list(self) -> list[Facility]:
        return [entity.to_model() for entity in _load_facilities(self.database)]

    def update(self, facility: Facility) -> None:
        """Replace a facility's fields and links; raises RecordNotFoundError if absent."""
        with self.database.transaction() as db:
            if not _exists(db, FacilityEntity.table_name, facility.id):
                raise RecordNotFoundError()
            for link_type in (InputRequirementEntity, OutputDefinitionEntity):
                _soft_delete(db, link_type.table_name, "facility_id = ?", (facility.id,))
            entity = FacilityEntity.from_model(facility)
            db.execute(
                "UPDATE facilities SET name = ?, description = ?, processing_time = ?, "
                "updated_at = ? WHERE id = ? AND deleted_at IS NULL",
                (entity.name, entity.description, entity.processing_time, _now(), facility.id),
            )
            self._insert_links(db, entity, facility.id)

    def delete(self, facility_id: int) -> None:
        """Remove a facility and its links; raises RecordNotFoundError if absent."""
        with self.database.transaction() as db:
            if not _exists(db, FacilityEntity.table_name, facility_id):
                raise RecordNotFoundError()
            for link_type in (InputRequirementEntity, OutputDefinitionEntity):
                _soft_delete(db, link_type.table_name, "facility_id = ?", (facility_id,))
            _soft_delete(db, FacilityEntity.table_name, "id = ?", (facility_id,))


class PipelineRepository:
    """Create, read, update and delete pipelines with their nodes and links."""

    def __init__(self, database: Database) -> None:
        self.database = database

    @staticmethod
    def _insert_nodes(db: Database, pipeline: Pipeline, pipeline_id: int) -> None:
        stored_ids = {
            key: _insert(
                db,
                PipelineNodeEntity.table_name,
                {"pipeline_id": pipeline_id, "facility_id": node.facility.id},
            )
            for key, node in pipeline.nodes.items()
        }
        for key, node in pipeline.nodes.items():
            for target_id in node.next_node_ids:
                if target_id not in stored_ids:
                    raise ValueError(f"node {key} links to unknown node {target_id}")
                _insert(
                    db,
                    PipelineNodeConnectionEntity.table_name,
                    {
                        "source_node_id": stored_ids[key],
                        "target_node_id": stored_ids[target_id],
                    },
                )

    def create(self, pipeline: Pipeline) -> None:
        """Store a new pipeline; the model is refreshed with the stored ids."""
        with self.database.transaction() as db:
            new_id = _insert(
                db,
                PipelineEntity.table_name,
                {"name": pipeline.name, "description": pipeline.description},
            )
            self._insert_nodes(db, pipeline, new_id)
            stored = _load_pipelines(db, " AND id = ?", (new_id,))[0]
        _assign(pipeline, stored.to_model())

    def get(self, pipeline_id: int) -> Pipeline | None:
        found = _load_pipelines(self.database, " AND id = ?", (pipeline_id,))
        return found[0].to_model() if found else None

    def list(self) -> list[Pipeline]:
        return [entity.to_model() for entity in _load_pipelines(self.database)]

    def _remove_nodes(self, db: Database, pipeline_id: int) -> None:
        _soft_delete(
            db,
            PipelineNodeConnectionEntity.table_name,
            f"source_node_id IN ({_NODES_OF_PIPELINE})",
            (pipeline_id,),
        )
        _soft_delete(db, PipelineNodeEntity.table_name, "pipeline_id = ?", (pipeline_id,))

    def update(self, pipeline: Pipeline) -> None:
        """Replace a pipeline's fields and nodes; raises RecordNotFoundError if absent."""
        with self.database.transaction() as db:
            if not _exists(db, PipelineEntity.table_name, pipeline.id):
                raise RecordNotFoundError()
            self._remove_nodes(db, pipeline.id)
            db.execute(
                "UPDATE pipelines SET name = ?, description = ?, updated_at = ? "
                "WHERE id = ? AND deleted_at IS NULL",
                (pipeline.name, pipeline.description, _now(), pipeline.id),
            )
            self._insert_nodes(db, pipeline, pipeline.id)
            stored = _load_pipelines(db, " AND id = ?", (pipeline.id,))[0]
        _assign(pipeline, stored.to_model())

    def delete(self, pipeline_id: int) -> None:
        """Remove a pipeline with its nodes; raises RecordNotFoundError if absent."""
        with self.database.transaction() as db:
            if not _exists(db, PipelineEntity.table_name, pipeline_id):
                raise RecordNotFoundError()
            self._remove_nodes(db, pipeline_id)
            _soft_delete(db, PipelineEntity.table_name, "id = ?", (pipeline_id,))


@dataclass
class Repositories:
    """All storage operations in one place."""

    items: ItemRepository
    facilities: FacilityRepository
    pipelines: PipelineRepository