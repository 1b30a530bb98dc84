"""
Document state helpers.

The resolver treats a document as an opaque JSON-like mapping.  The only
structure it relies on is validated here, when a snapshot payload enters the
event store.
"""

from __future__ import annotations

import copy
import json
from typing import Any, Dict, List, Mapping, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import MalformedSnapshot
from .events import DocumentState

DEFAULT_VIEWPORT = {"xmin": -10.0, "ymin": -10.0, "xmax": 10.0, "ymax": 10.0}


def blank_document_state() -> DocumentState:
    """
    Fixed empty baseline every replay starts from.

    Authored starting content belongs in a snapshot at frame 0.
    """

    return {
        "version": 1,
        "randomSeed": "",
        "graph": {
            "viewport": dict(DEFAULT_VIEWPORT),
            "showGrid": True,
            "showXAxis": True,
            "showYAxis": True,
        },
        "expressions": {"list": []},
    }


class ViewportModel(BaseModel):
    xmin: float
    ymin: float
    xmax: float
    ymax: float
    model_config = ConfigDict(extra="allow")


class GraphModel(BaseModel):
    viewport: ViewportModel = Field(default_factory=lambda: ViewportModel(**DEFAULT_VIEWPORT))
    model_config = ConfigDict(extra="allow")


class ExpressionListModel(BaseModel):
    list: List[Dict[str, Any]] = Field(default_factory=list)
    model_config = ConfigDict(extra="allow")

    @field_validator("list")
    @classmethod
    def _require_ids(cls, value: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        for index, entry in enumerate(value):
            entity_id = entry.get("id")
            if not isinstance(entity_id, str) or not entity_id:
                raise ValueError(f"expression #{index} has no id")
        return value


class DocumentModel(BaseModel):
    version: int = 1
    randomSeed: str = ""
    graph: GraphModel = Field(default_factory=GraphModel)
    expressions: ExpressionListModel = Field(default_factory=ExpressionListModel)
    model_config = ConfigDict(extra="allow")


def parse_document(payload: Union[str, bytes, Mapping[str, Any]]) -> DocumentState:
    """
    Parse a manually edited snapshot payload.

    Accepts JSON text or an already decoded mapping and raises
    :class:`MalformedSnapshot` on anything that is not a document.
    """

    data: Any = payload
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except ValueError as exc:
            raise MalformedSnapshot(f"snapshot payload is not valid JSON: {exc}") from exc
    if not isinstance(data, Mapping):
        raise MalformedSnapshot("snapshot payload must be a JSON object")
    try:
        model = DocumentModel.model_validate(dict(data))
    except ValidationError as exc:
        raise MalformedSnapshot(f"snapshot payload is not a document: {exc}") from exc
    return model.model_dump()


def entity_list(state: Mapping[str, Any]) -> List[Dict[str, Any]]:
    expressions = state.get("expressions") or {}
    return list(expressions.get("list") or [])


def find_entity(state: Mapping[str, Any], entity_id: str) -> Dict[str, Any] | None:
    for entry in entity_list(state):
        if entry.get("id") == entity_id:
            return copy.deepcopy(entry)
    return None
