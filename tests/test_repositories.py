import sqlite3

import pytest

from fasim.db import Database, RecordNotFoundError
from fasim.entities import get_models
from fasim.models import (
    Facility,
    InputRequirement,
    Item,
    OutputDefinition,
    Pipeline,
    PipelineNode,
)
from fasim.repositories import (
    FacilityRepository,
    ItemRepository,
    PipelineRepository,
    Repositories,
)


@pytest.fixture
def db():
    database = Database(":memory:")
    database.run_migrations(*get_models())
    yield database
    database.close()


@pytest.fixture
def repos(db):
    return Repositories(
        items=ItemRepository(db),
        facilities=FacilityRepository(db),
        pipelines=PipelineRepository(db),
    )


def live_count(db, table, where="1 = 1", params=()):
    return db.execute(
        f"SELECT COUNT(*) FROM {table} WHERE {where} AND deleted_at IS NULL", params
    ).fetchone()[0]


def make_item(repos, name):
    item = Item(name, "Test Description for " + name)
    repos.items.create(item)
    return item


def make_facility(repos, name, inputs, outputs):
    facility = Facility(name, "Test Description for " + name, 100)
    for i, item in enumerate(inputs):
        facility.add_input_requirement(InputRequirement(item, i + 1))
    for i, item in enumerate(outputs):
        facility.add_output_definition(OutputDefinition(item, i + 2))
    repos.facilities.create(facility)
    assert facility.id > 0
    return facility


def make_chain(repos, name, facilities):
    pipeline = Pipeline(name)
    for i, facility in enumerate(facilities, start=1):
        node = PipelineNode(facility, id=i)
        if i < len(facilities):
            node.add_next_node_id(i + 1)
        pipeline.add_node(node)
    repos.pipelines.create(pipeline)
    assert pipeline.id > 0
    return repos.pipelines.get(pipeline.id)


def facility_edges(pipeline):
    return sorted(
        (node.facility.id, pipeline.nodes[target].facility.id)
        for node in pipeline.nodes.values()
        for target in node.next_node_ids
    )


# Items


def test_item_create_stores_row(repos, db):
    item = Item("Test Item", "Test Description")
    repos.items.create(item)
    assert item.id > 0
    row = db.execute("SELECT id, name, description FROM items WHERE id = ?", (item.id,)).fetchone()
    assert (row["id"], row["name"], row["description"]) == (item.id, "Test Item", "Test Description")


def test_item_create_enforces_unique_name(repos):
    repos.items.create(Item("Test Item", "Original Description"))
    with pytest.raises(sqlite3.IntegrityError, match="UNIQUE constraint failed"):
        repos.items.create(Item("Test Item", "Different Description"))


def test_item_get(repos):
    item = make_item(repos, "Test Item")
    result = repos.items.get(item.id)
    assert result == Item("Test Item", "Test Description for Test Item", item.id)


def test_item_get_missing_returns_none(repos):
    assert repos.items.get(999) is None


def test_item_list_in_creation_order(repos):
    items = [make_item(repos, "Item 1"), make_item(repos, "Item 2")]
    assert repos.items.list() == items


def test_item_update(repos, db):
    item = make_item(repos, "Original Name")
    repos.items.update(Item("Updated Name", "Updated Description", item.id))
    row = db.execute("SELECT name, description FROM items WHERE id = ?", (item.id,)).fetchone()
    assert (row["name"], row["description"]) == ("Updated Name", "Updated Description")


def test_item_update_missing_raises(repos):
    with pytest.raises(RecordNotFoundError):
        repos.items.update(Item("Non-existent", "Non-existent", 999))


def test_item_delete(repos, db):
    item = make_item(repos, "Test Item")
    repos.items.delete(item.id)
    assert live_count(db, "items", "id = ?", (item.id,)) == 0
    assert repos.items.get(item.id) is None


def test_item_delete_missing_raises(repos):
    with pytest.raises(RecordNotFoundError):
        repos.items.delete(999)


def test_item_delete_twice_raises(repos):
    item = make_item(repos, "Test Item")
    repos.items.delete(item.id)
    with pytest.raises(RecordNotFoundError):
        repos.items.delete(item.id)


# Facilities


def test_facility_create_with_relationships(repos, db):
    input_item = make_item(repos, "Input Item")
    output_item = make_item(repos, "Output Item")
    facility = Facility("Test Facility", "Test Description", 100)
    facility.add_input_requirement(InputRequirement(input_item, 2))
    facility.add_output_definition(OutputDefinition(output_item, 1))
    repos.facilities.create(facility)

    assert facility.id > 0
    row = db.execute(
        "SELECT name, description, processing_time FROM facilities WHERE id = ?",
        (facility.id,),
    ).fetchone()
    assert tuple(row) == ("Test Facility", "Test Description", 100)
    inputs = db.execute(
        "SELECT item_id, quantity FROM input_requirements WHERE facility_id = ?",
        (facility.id,),
    ).fetchall()
    assert [tuple(r) for r in inputs] == [(input_item.id, 2)]
    outputs = db.execute(
        "SELECT item_id, quantity FROM output_definitions WHERE facility_id = ?",
        (facility.id,),
    ).fetchall()
    assert [tuple(r) for r in outputs] == [(output_item.id, 1)]
    assert facility.input_requirements == [InputRequirement(input_item, 2)]


def test_facility_create_enforces_unique_name(repos, db):
    input_item = make_item(repos, "Input Item")
    output_item = make_item(repos, "Output Item")
    first = Facility("Test Facility", "Test Description", 100)
    first.add_input_requirement(InputRequirement(input_item, 1))
    first.add_output_definition(OutputDefinition(output_item, 1))
    repos.facilities.create(first)

    second = Facility("Test Facility", "Test Description", 200)
    second.add_input_requirement(InputRequirement(input_item, 2))
    second.add_output_definition(OutputDefinition(output_item, 2))
    with pytest.raises(sqlite3.IntegrityError, match="UNIQUE constraint failed"):
        repos.facilities.create(second)
    assert live_count(db, "input_requirements") == 1
    assert live_count(db, "output_definitions") == 1


def test_facility_get(repos):
    input_item = make_item(repos, "Input Item")
    output_item = make_item(repos, "Output Item")
    created = make_facility(repos, "Test Facility", [input_item], [output_item])
    result = repos.facilities.get(created.id)
    assert (result.id, result.name, result.description, result.processing_time) == (
        created.id,
        "Test Facility",
        "Test Description for Test Facility",
        100,
    )
    assert [(r.item.id, r.quantity) for r in result.input_requirements] == [(input_item.id, 1)]
    assert [(d.item.id, d.quantity) for d in result.output_definitions] == [(output_item.id, 2)]
    assert result.input_requirements[0].item == input_item


def test_facility_get_missing_returns_none(repos):
    assert repos.facilities.get(999) is None


def test_facility_list(repos):
    input_item = make_item(repos, "Input Item")
    output_item = make_item(repos, "Output Item")
    facilities = [
        make_facility(repos, "Facility 1", [input_item], [output_item]),
        make_facility(repos, "Facility 2", [input_item], [output_item]),
    ]
    results = repos.facilities.list()
    assert [(f.id, f.name) for f in results] == [(f.id, f.name) for f in facilities]
    for result in results:
        assert [r.item.id for r in result.input_requirements] == [input_item.id]
        assert [d.item.id for d in result.output_definitions] == [output_item.id]


def test_facility_update(repos):
    in1 = make_item(repos, "Input Item 1")
    in2 = make_item(repos, "Input Item 2")
    out1 = make_item(repos, "Output Item 1")
    out2 = make_item(repos, "Output Item 2")
    facility = make_facility(repos, "Original Facility", [in1], [out1])

    updated = Facility(
        "Updated Facility",
        "Updated Description",
        200,
        [InputRequirement(in2, 3)],
        [OutputDefinition(out2, 4)],
        facility.id,
    )
    repos.facilities.update(updated)

    result = repos.facilities.get(facility.id)
    assert (result.name, result.description, result.processing_time) == (
        "Updated Facility",
        "Updated Description",
        200,
    )
    assert [(r.item.id, r.quantity) for r in result.input_requirements] == [(in2.id, 3)]
    assert [(d.item.id, d.quantity) for d in result.output_definitions] == [(out2.id, 4)]


def test_facility_update_missing_raises(repos):
    with pytest.raises(RecordNotFoundError):
        repos.facilities.update(Facility("Non-existent", "Non-existent", 100, [], [], 999))


def test_facility_delete(repos, db):
    input_item = make_item(repos, "Input Item")
    output_item = make_item(repos, "Output Item")
    facility = make_facility(repos, "Test Facility", [input_item], [output_item])
    repos.facilities.delete(facility.id)
    assert live_count(db, "facilities", "id = ?", (facility.id,)) == 0
    assert live_count(db, "input_requirements", "facility_id = ?", (facility.id,)) == 0
    assert live_count(db, "output_definitions", "facility_id = ?", (facility.id,)) == 0
    assert repos.facilities.get(facility.id) is None


def test_facility_delete_missing_raises(repos):
    with pytest.raises(RecordNotFoundError):
        repos.facilities.delete(999)


# Pipelines


@pytest.fixture
def two_facilities(repos):
    item1 = make_item(repos, "Item 1")
    item2 = make_item(repos, "Item 2")
    return (
        make_facility(repos, "Facility 1", [item1], [item2]),
        make_facility(repos, "Facility 2", [item2], [item1]),
    )


def test_pipeline_create_with_sequential_nodes(repos, two_facilities):
    facility1, facility2 = two_facilities
    pipeline = Pipeline("Test Pipeline")
    node1 = PipelineNode(facility1, id=1)
    node1.add_next_node_id(2)
    pipeline.add_node(node1)
    pipeline.add_node(PipelineNode(facility2, id=2))
    repos.pipelines.create(pipeline)

    assert pipeline.id > 0
    assert all(key == node.id for key, node in pipeline.nodes.items())
    result = repos.pipelines.get(pipeline.id)
    assert (result.id, result.name, result.description) == (pipeline.id, "Test Pipeline", "")
    assert len(result.nodes) == 2
    assert facility_edges(result) == [(facility1.id, facility2.id)]
    assert result == pipeline


def test_pipeline_nodes_with_same_id_collapse(repos, two_facilities):
    facility1, facility2 = two_facilities
    pipeline = Pipeline("Test Pipeline")
    node1 = PipelineNode(facility1)
    node1.add_next_node_id(2)
    pipeline.add_node(node1)
    pipeline.add_node(PipelineNode(facility2))
    repos.pipelines.create(pipeline)
    result = repos.pipelines.get(pipeline.id)
    assert [node.facility.id for node in result.nodes.values()] == [facility2.id]
    assert facility_edges(result) == []


def test_pipeline_create_enforces_unique_name(repos, db, two_facilities):
    facility1, facility2 = two_facilities
    existing = Pipeline("Test Pipeline")
    existing.add_node(PipelineNode(facility1, id=1))
    repos.pipelines.create(existing)

    pipeline = Pipeline("Test Pipeline")
    pipeline.add_node(PipelineNode(facility1, id=1, next_node_ids=[2]))
    pipeline.add_node(PipelineNode(facility2, id=2))
    with pytest.raises(sqlite3.IntegrityError, match="UNIQUE constraint failed"):
        repos.pipelines.create(pipeline)
    assert live_count(db, "pipelines") == 1
    assert live_count(db, "pipeline_nodes") == 1


def test_pipeline_create_unknown_target_rolls_back(repos, db, two_facilities):
    facility1, _ = two_facilities
    pipeline = Pipeline("Broken")
    pipeline.add_node(PipelineNode(facility1, id=1, next_node_ids=[7]))
    with pytest.raises(ValueError):
        repos.pipelines.create(pipeline)
    assert live_count(db, "pipelines") == 0
    assert live_count(db, "pipeline_nodes") == 0


def test_pipeline_get(repos, two_facilities):
    created = make_chain(repos, "Test Pipeline", list(two_facilities))
    result = repos.pipelines.get(created.id)
    assert result == created
    assert facility_edges(result) == [(two_facilities[0].id, two_facilities[1].id)]
    node = next(n for n in result.nodes.values() if n.facility.id == two_facilities[0].id)
    assert node.facility.processing_time == 100
    assert len(node.facility.input_requirements) == 1


def test_pipeline_get_missing_returns_none(repos):
    assert repos.pipelines.get(999) is None


def test_pipeline_list(repos, two_facilities):
    pipelines = [
        make_chain(repos, "Pipeline 1", list(two_facilities)),
        make_chain(repos, "Pipeline 2", list(two_facilities)),
    ]
    results = repos.pipelines.list()
    assert results == pipelines
    expected = [(two_facilities[0].id, two_facilities[1].id)]
    assert [facility_edges(p) for p in results] == [expected, expected]


def test_pipeline_update(repos, db, two_facilities):
    item = make_item(repos, "Test Item")
    facility3 = make_facility(repos, "Facility 3", [item], [item])
    original = make_chain(repos, "Original Pipeline", list(two_facilities))

    updated = Pipeline("Updated Pipeline", "Updated Description", {}, original.id)
    node1 = PipelineNode(two_facilities[1], id=1)
    node1.add_next_node_id(2)
    updated.add_node(node1)
    updated.add_node(PipelineNode(facility3, id=2))
    repos.pipelines.update(updated)

    result = repos.pipelines.get(original.id)
    assert (result.name, result.description) == ("Updated Pipeline", "Updated Description")
    assert len(result.nodes) == 2
    assert facility_edges(result) == [(two_facilities[1].id, facility3.id)]
    assert live_count(db, "pipeline_nodes") == 2
    assert live_count(db, "pipeline_node_connections") == 1


def test_pipeline_update_missing_raises(repos):
    with pytest.raises(RecordNotFoundError):
        repos.pipelines.update(Pipeline("Non-existent", "Non-existent", {}, 999))


def test_pipeline_delete(repos, db, two_facilities):
    pipeline = make_chain(repos, "Test Pipeline", list(two_facilities))
    repos.pipelines.delete(pipeline.id)
    assert live_count(db, "pipelines", "id = ?", (pipeline.id,)) == 0
    assert live_count(db, "pipeline_nodes", "pipeline_id = ?", (pipeline.id,)) == 0
    assert (
        live_count(
            db,
            "pipeline_node_connections",
            "source_node_id IN (SELECT id FROM pipeline_nodes WHERE pipeline_id = ?)",
            (pipeline.id,),
        )
        == 0
    )
    assert repos.pipelines.get(pipeline.id) is None


def test_pipeline_delete_missing_raises(repos):
    with pytest.raises(RecordNotFoundError):
        repos.pipelines.delete(999)