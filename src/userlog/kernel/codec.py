"""
EventCodec - payload serialization for the event log

Writers hand the codec a typed pydantic payload; the codec turns it into
compact, key-sorted JSON bytes. Readers that do not know the concrete
schema get a plain dict back with keys in sorted order at every level.
Readers that do know the schema can ask for the typed model by
(kind, version).
"""

import json
from typing import Any

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from userlog.kernel.errors import DecodeError

PayloadRegistry = dict[tuple[str, str], type[BaseModel]]


def _sort_keys(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _sort_keys(value[k]) for k in sorted(value)}
    if isinstance(value, list):
        return [_sort_keys(v) for v in value]
    return value


class EventCodec:
    """
    JSON codec for event payloads

    Encoding is deterministic: the same payload always yields the same
    bytes, which keeps stored events diffable and hashable.
    """

    def __init__(self, registry: PayloadRegistry | None = None) -> None:
        """
        Initialize codec

        Args:
            registry: (kind, version) -> payload model, used by decode_typed
        """
        self._registry: PayloadRegistry = dict(registry or {})

    def register(self, kind: str, version: str, model: type[BaseModel]) -> None:
        """Register the payload model for an event variant"""
        self._registry[(kind, version)] = model

    def encode(self, payload: BaseModel) -> bytes:
        """
        Serialize a typed payload into bytes

        Field aliases are honoured, so a field declared with
        alias="passwordChanged" is stored under that key.
        """
        data = payload.model_dump(mode="json", by_alias=True)
        return json.dumps(
            data, sort_keys=True, separators=(",", ":"), ensure_ascii=False
        ).encode("utf-8")

    def decode(self, data: bytes) -> dict[str, Any]:
        """
        Deserialize payload bytes into a key-ordered mapping

        Raises:
            DecodeError: If bytes are not UTF-8 JSON or not a JSON object
        """
        try:
            value = json.loads(bytes(data).decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as e:
            raise DecodeError(f"Malformed event payload: {e}") from e

        if not isinstance(value, dict):
            raise DecodeError(
                f"Event payload must be a JSON object, got {type(value).__name__}"
            )
        return _sort_keys(value)

    def decode_typed(self, kind: str, version: str, data: bytes) -> BaseModel:
        """
        Deserialize payload bytes into the registered model for (kind, version)

        Raises:
            DecodeError: If the variant is unknown or the payload doesn't fit it
        """
        model = self._registry.get((kind, version))
        if model is None:
            raise DecodeError(f"No payload model registered for {kind} {version}")

        raw = self.decode(data)
        try:
            return model.model_validate(raw)
        except PydanticValidationError as e:
            raise DecodeError(f"Payload does not match {kind} {version}: {e}") from e
