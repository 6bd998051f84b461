"""Request handlers for the item and facility endpoints."""

from __future__ import annotations

import logging
import re
import sqlite3
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from dataclasses import dataclass, field
from http import HTTPStatus
from typing import Any

from fasim.db import RecordNotFoundError
from fasim.models import Facility, InputRequirement, Item, OutputDefinition
from fasim.repositories import FacilityRepository, ItemRepository

logger = logging.getLogger(__name__)

_INT64_MIN = -(2**63)
_INT64_MAX = 2**63 - 1
_ID_PATTERN = re.compile(r"[+-]?[0-9]+")


class ApiError(Exception):
    """An error that is answered with an HTTP status and a message."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(message)
        self.status = HTTPStatus(status)
        self.message = message


@contextmanager
def _storage_errors() -> Iterator[None]:
    """Turn storage failures into internal server errors."""
    try:
        yield
    except (sqlite3.Error, RecordNotFoundError) as err:
        raise ApiError(HTTPStatus.INTERNAL_SERVER_ERROR, str(err)) from err


def _parse_id(raw_id: Any, what: str) -> int:
    text = str(raw_id)
    if _ID_PATTERN.fullmatch(text):
        value = int(text)
        if _INT64_MIN <= value <= _INT64_MAX:
            return value
    raise ApiError(HTTPStatus.BAD_REQUEST, f"Invalid {what} ID")


def _mapping(body: Any) -> Mapping[str, Any]:
    if body is None:
        return {}
    if not isinstance(body, Mapping):
        raise ApiError(HTTPStatus.BAD_REQUEST, "request body must be a JSON object")
    return body


def _field(data: Mapping[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if isinstance(value, bool) or not isinstance(value, kind):
        raise ApiError(HTTPStatus.BAD_REQUEST, f"invalid value for field {key!r}")
    if kind is int and not _INT64_MIN <= value <= _INT64_MAX:
        raise ApiError(HTTPStatus.BAD_REQUEST, f"value of field {key!r} is out of range")
    return value


@dataclass
class _ItemRequest:
    name: str = ""
    description: str = ""

    @classmethod
    def bind(cls, body: Any) -> _ItemRequest:
        data = _mapping(body)
        return cls(
            name=_field(data, "name", str, ""),
            description=_field(data, "description", str, ""),
        )


@dataclass
class _LinkRequest:
    item_id: int = 0
    quantity: int = 0

    @classmethod
    def bind(cls, entry: Any) -> _LinkRequest:
        data = _mapping(entry)
        return cls(
            item_id=_field(data, "itemId", int, 0),
            quantity=_field(data, "quantity", int, 0),
        )


@dataclass
class _FacilityRequest:
    name: str = ""
    description: str = ""
    processing_time: int = 0
    inputs: list[_LinkRequest] = field(default_factory=list)
    outputs: list[_LinkRequest] = field(default_factory=list)

    @classmethod
    def bind(cls, body: Any) -> _FacilityRequest:
        data = _mapping(body)
        return cls(
            name=_field(data, "name", str, ""),
            description=_field(data, "description", str, ""),
            processing_time=_field(data, "processingTime", int, 0),
            inputs=[_LinkRequest.bind(e) for e in _field(data, "inputs", list, [])],
            outputs=[_LinkRequest.bind(e) for e in _field(data, "outputs", list, [])],
        )


def item_response(item: Item) -> dict[str, Any]:
    """The JSON form of an item."""
    return {"id": item.id, "name": item.name, "description": item.description}


def facility_response(facility: Facility) -> dict[str, Any]:
    """The JSON form of a facility with its inputs and outputs."""
    return {
        "id": facility.id,
        "name": facility.name,
        "description": facility.description,
        "processingTime": facility.processing_time,
        "inputs": [
            {"itemId": req.item.id, "quantity": req.quantity}
            for req in facility.input_requirements
        ],
        "outputs": [
            {"itemId": out.item.id, "quantity": out.quantity}
            for out in facility.output_definitions
        ],
    }


class ItemHandler:
    """Handles the /api/items endpoints; each method returns (body, status)."""

    def __init__(self, repo: ItemRepository) -> None:
        self.repo = repo

    def list(self) -> tuple[Any, int]:
        with _storage_errors():
            items = self.repo.list()
        return [item_response(item) for item in items], HTTPStatus.OK

    def get(self, raw_id: Any) -> tuple[Any, int]:
        item_id = _parse_id(raw_id, "item")
        try:
            item = self.repo.get(item_id)
        except sqlite3.Error:
            item = None
        if item is None:
            raise ApiError(HTTPStatus.NOT_FOUND, "Item not found")
        return item_response(item), HTTPStatus.OK

    def create(self, body: Any) -> tuple[Any, int]:
        req = _ItemRequest.bind(body)
        logger.debug("create item: name=%s, description=%s", req.name, req.description)
        item = Item(name=req.name, description=req.description)
        with _storage_errors():
            self.repo.create(item)
        return item_response(item), HTTPStatus.CREATED

    def update(self, raw_id: Any, body: Any) -> tuple[Any, int]:
        item_id = _parse_id(raw_id, "item")
        req = _ItemRequest.bind(body)
        with _storage_errors():
            existing = self.repo.get(item_id)
        if existing is None:
            raise ApiError(HTTPStatus.NOT_FOUND, "Item not found")
        updated = Item(name=req.name, description=req.description, id=item_id)
        with _storage_errors():
            self.repo.update(updated)
        return item_response(updated), HTTPStatus.OK

    def delete(self, raw_id: Any) -> tuple[Any, int]:
        item_id = _parse_id(raw_id, "item")
        with _storage_errors():
            self.repo.delete(item_id)
        return None, HTTPStatus.NO_CONTENT


class FacilityHandler:
    """Handles the /api/facilities endpoints; each method returns (body, status)."""

    def __init__(self, facility_repo: FacilityRepository, item_repo: ItemRepository) -> None:
        self.facility_repo = facility_repo
        self.item_repo = item_repo

    def _item(self, item_id: int, direction: str) -> Item:
        try:
            item = self.item_repo.get(item_id)
        except sqlite3.Error:
            item = None
        if item is None:
            raise ApiError(HTTPStatus.BAD_REQUEST, f"Invalid {direction} item ID")
        return item

    def _links(
        self, req: _FacilityRequest
    ) -> tuple[list[InputRequirement], list[OutputDefinition]]:
        inputs = [
            InputRequirement(self._item(link.item_id, "input"), link.quantity)
            for link in req.inputs
        ]
        outputs = [
            OutputDefinition(self._item(link.item_id, "output"), link.quantity)
            for link in req.outputs
        ]
        return inputs, outputs

    def list(self) -> tuple[Any, int]:
        with _storage_errors():
            facilities = self.facility_repo.list()
        return [facility_response(f) for f in facilities], HTTPStatus.OK

    def get(self, raw_id: Any) -> tuple[Any, int]:
        facility_id = _parse_id(raw_id, "facility")
        try:
            facility = self.facility_repo.get(facility_id)
        except sqlite3.Error:
            facility = None
        if facility is None:
            raise ApiError(HTTPStatus.NOT_FOUND, "Facility not found")
        return facility_response(facility), HTTPStatus.OK

    def create(self, body: Any) -> tuple[Any, int]:
        req = _FacilityRequest.bind(body)
        inputs, outputs = self._links(req)
        facility = Facility(
            name=req.name,
            description=req.description,
            processing_time=req.processing_time,
            input_requirements=inputs,
            output_definitions=outputs,
        )
        with _storage_errors():
            self.facility_repo.create(facility)
            created = self.facility_repo.get(facility.id)
        if created is None:
            raise ApiError(HTTPStatus.INTERNAL_SERVER_ERROR, "record not found")
        return facility_response(created), HTTPStatus.CREATED

    def update(self, raw_id: Any, body: Any) -> tuple[Any, int]:
        facility_id = _parse_id(raw_id, "facility")
        req = _FacilityRequest.bind(body)
        with _storage_errors():
            existing = self.facility_repo.get(facility_id)
        if existing is None:
            raise ApiError(HTTPStatus.NOT_FOUND, "Facility not found")
        inputs, outputs = self._links(req)
        updated = Facility(
            name=req.name,
            description=req.description,
            processing_time=req.processing_time,
            input_requirements=inputs,
            output_definitions=outputs,
            id=facility_id,
        )
        with _storage_errors():
            self.facility_repo.update(updated)
        return facility_response(updated), HTTPStatus.OK

    def delete(self, raw_id: Any) -> tuple[Any, int]:
        facility_id = _parse_id(raw_id, "facility")
        with _storage_errors():
            self.facility_repo.delete(facility_id)
        return None, HTTPStatus.NO_CONTENT