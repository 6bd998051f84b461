# fasim

Factory Automation Simulator. A small HTTP API and SQLite storage layer for modelling
manufacturing processes:

- **items**: materials and products
- **facilities**: units that turn input items into output items over a processing time
- **pipelines**: facilities joined into a production line by links between nodes

## Installation

```
pip install .
```

## Command line

All commands use the SQLite database file `fasim.db` in the current working directory.

Create the database file if needed and set up every table:

```
fasim init-db
```

Create any missing tables and indexes in an existing database:

```
fasim migrate
```

Start the API server. It listens on all interfaces, on port 8080 by default:

```
fasim server
fasim server --port 9000
```

The server stops on Ctrl+C or SIGTERM, waiting up to ten seconds for running requests.
Running `fasim` with no command prints the help. Errors are printed to standard error and
the exit status is 1.

## HTTP API

`GET /` returns a welcome message, the API version (`1.0.0`) and the status `running`.

| Method | Path                   | Purpose            | Success status |
|--------|------------------------|--------------------|----------------|
| GET    | `/api/items`           | list items         | 200            |
| GET    | `/api/items/<id>`      | fetch one item     | 200            |
| POST   | `/api/items`           | create an item     | 201            |
| PUT    | `/api/items/<id>`      | replace an item    | 200            |
| DELETE | `/api/items/<id>`      | delete an item     | 204            |
| GET    | `/api/facilities`      | list facilities    | 200            |
| GET    | `/api/facilities/<id>` | fetch one facility | 200            |
| POST   | `/api/facilities`      | create a facility  | 201            |
| PUT    | `/api/facilities/<id>` | replace a facility | 200            |
| DELETE | `/api/facilities/<id>` | delete a facility  | 204            |

An item body:

```json
{"name": "Iron Plate", "description": "Smelted iron"}
```

A facility body; every `itemId` must name an existing item, or the request is answered
with 400:

```json
{
  "name": "Smelter",
  "description": "Turns ore into plates",
  "processingTime": 100,
  "inputs": [{"itemId": 1, "quantity": 2}],
  "outputs": [{"itemId": 2, "quantity": 1}]
}
```

Request bodies must be sent as `application/json`. Errors come back as
`{"message": "..."}` with the matching status: 400 for a malformed id or body, 404 for an
unknown item or facility on fetch or replace, 500 for storage failures (such as a
duplicate name, or deleting a record that does not exist).

Item, facility and pipeline names must be unique. Deleted records are kept in the
database, marked as deleted, and no longer returned.

Cross-origin requests are allowed from `http://localhost:3000` and
`http://localhost:8080` for the methods GET, POST, PUT, DELETE and OPTIONS.

## Using it as a library

```python
from fasim.db import Database
from fasim.entities import get_models
from fasim.models import Facility, InputRequirement, Item, OutputDefinition
from fasim.repositories import FacilityRepository, ItemRepository

with Database("fasim.db") as database:
    database.run_migrations(*get_models())
    items = ItemRepository(database)
    facilities = FacilityRepository(database)

    ore = Item(name="Iron Ore")
    plate = Item(name="Iron Plate", description="Smelted iron")
    items.create(ore)
    items.create(plate)

    smelter = Facility(name="Smelter", processing_time=100)
    smelter.add_input_requirement(InputRequirement(ore, 2))
    smelter.add_output_definition(OutputDefinition(plate, 1))
    facilities.create(smelter)
    print(smelter.id, facilities.get(smelter.id).name)
```

`get` returns `None` for an unknown id. `update` and `delete` raise
`fasim.db.RecordNotFoundError` when the record does not exist; a duplicate name raises
`sqlite3.IntegrityError`.

Pipelines are stored with `fasim.repositories.PipelineRepository`. Build a `Pipeline`,
add `PipelineNode`s keyed by their `id`, and link nodes with `add_next_node_id`; on
`create` and `update` the model is refreshed with the ids the database assigned:

```python
from fasim.models import Pipeline, PipelineNode
from fasim.repositories import PipelineRepository

line = Pipeline(name="Plate line")
first = PipelineNode(smelter, id=1)
first.add_next_node_id(2)
line.add_node(first)
line.add_node(PipelineNode(press, id=2))
PipelineRepository(database).create(line)
```

`fasim.app.create_app(database)` builds the Flask application, which can be served under
any WSGI server.

## What it does not do

- Pipelines have no HTTP endpoints; they can be managed only through `PipelineRepository`.
- Nothing runs a simulation: the package stores and serves the production model but does
  not compute throughput or schedules from it.
- The commands cannot be pointed at a database other than `fasim.db` in the working
  directory; use `fasim.cli.init_db`, `migrate` or `start_server` with a `path` for that.

## Running the tests

```
pip install .[test]
pytest
```