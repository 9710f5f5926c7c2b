"""Serialization helpers for checkpoints."""
from __future__ import annotations

import json
import math
from typing import Any, Dict, List, Mapping, Tuple

from yarnloom.core.types import Value, value_kind
from yarnloom.domain.checkpoint import Checkpoint, Option, ReturnFrame
from yarnloom.domain.program import Program
from yarnloom.services.errors import CheckpointFormatError

CheckpointPayload = Dict[str, Any]


class CheckpointCodec:
    """Converts checkpoints to/from a validated, versioned payload."""

    CHECKPOINT_VERSION = 1

    def serialize(self, checkpoint: Checkpoint) -> CheckpointPayload:
        """Return a JSON-serializable payload."""
        return {
            "checkpoint_version": self.CHECKPOINT_VERSION,
            "state": {
                "node": checkpoint.node,
                "pointer": checkpoint.pointer,
                "stack": [self._encode_value(value) for value in checkpoint.stack],
                "call_stack": [
                    {"node": frame.node, "pointer": frame.pointer} for frame in checkpoint.call_stack
                ],
                "pending_options": [self._encode_option(option) for option in checkpoint.pending_options],
                "offered_options": [self._encode_option(option) for option in checkpoint.offered_options],
                "awaiting_selection": checkpoint.awaiting_selection,
                "visits": {name: count for name, count in checkpoint.visits},
                "complete": checkpoint.complete,
            },
        }

    def deserialize(self, payload: Mapping[str, Any], program: Program | None = None) -> Checkpoint:
        """Rehydrate a checkpoint; with a program, also check it fits that program."""
        if not isinstance(payload, Mapping):
            raise CheckpointFormatError("Checkpoint data must be a JSON object.")
        version = payload.get("checkpoint_version")
        if version != self.CHECKPOINT_VERSION:
            raise CheckpointFormatError(
                f"Unsupported checkpoint version {version!r} (expected {self.CHECKPOINT_VERSION})."
            )
        state = payload.get("state")
        if not isinstance(state, Mapping):
            raise CheckpointFormatError("Checkpoint data is missing the state section.")

        node = self._require_str(state.get("node"), "state.node")
        pointer = self._require_non_negative_int(state.get("pointer"), "state.pointer")
        stack = tuple(
            self._decode_value(entry, f"state.stack[{index}]")
            for index, entry in enumerate(self._require_list(state.get("stack"), "state.stack"))
        )
        call_stack = tuple(
            self._decode_frame(entry, f"state.call_stack[{index}]")
            for index, entry in enumerate(self._require_list(state.get("call_stack"), "state.call_stack"))
        )
        pending = self._decode_options(state.get("pending_options"), "state.pending_options")
        offered = self._decode_options(state.get("offered_options"), "state.offered_options")
        awaiting = self._require_bool(state.get("awaiting_selection"), "state.awaiting_selection")
        complete = self._require_bool(state.get("complete"), "state.complete")
        visits = self._decode_visits(state.get("visits"))

        if awaiting and not offered:
            raise CheckpointFormatError("Checkpoint awaits a selection but offers no options.")

        checkpoint = Checkpoint(
            node=node,
            pointer=pointer,
            stack=stack,
            call_stack=call_stack,
            pending_options=pending,
            offered_options=offered,
            awaiting_selection=awaiting,
            visits=visits,
            complete=complete,
        )
        if program is not None:
            self._validate_against(checkpoint, program)
        return checkpoint

    def dumps(self, checkpoint: Checkpoint) -> bytes:
        """Encode as canonical JSON bytes."""
        text = json.dumps(self.serialize(checkpoint), sort_keys=True, separators=(",", ":"))
        return text.encode("utf-8")

    def loads(self, data: bytes | str, program: Program | None = None) -> Checkpoint:
        try:
            payload = json.loads(data)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise CheckpointFormatError(f"Checkpoint data is not valid JSON: {exc}") from exc
        return self.deserialize(payload, program)

    @staticmethod
    def _encode_value(value: Value | None) -> Dict[str, Any]:
        kind = value_kind(value)
        if value is None:
            return {"type": "null"}
        if kind == "number":
            number = float(value)  # type: ignore[arg-type]
            # JSON has no NaN/infinity literals; keep those exact via repr.
            if not math.isfinite(number):
                return {"type": "number", "value": repr(number)}
            return {"type": "number", "value": number}
        return {"type": kind, "value": value}

    def _decode_value(self, raw: object, context: str) -> Value | None:
        entry = self._require_mapping(raw, context)
        kind = entry.get("type")
        value = entry.get("value")
        if kind == "null":
            return None
        if kind == "string" and isinstance(value, str):
            return value
        if kind == "bool" and isinstance(value, bool):
            return value
        if kind == "number":
            if isinstance(value, str) and value in ("inf", "-inf", "nan"):
                return float(value)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                return float(value)
        raise CheckpointFormatError(f"{context} is not a valid tagged value.")

    @staticmethod
    def _encode_option(option: Option) -> Dict[str, Any]:
        return {
            "key": option.key,
            "destination": option.destination,
            "substitutions": list(option.substitutions),
            "enabled": option.enabled,
        }

    def _decode_options(self, raw: object, context: str) -> Tuple[Option, ...]:
        options: List[Option] = []
        for index, entry in enumerate(self._require_list(raw, context)):
            entry_ctx = f"{context}[{index}]"
            mapping = self._require_mapping(entry, entry_ctx)
            substitutions = self._require_list(mapping.get("substitutions"), f"{entry_ctx}.substitutions")
            options.append(
                Option(
                    key=self._require_str(mapping.get("key"), f"{entry_ctx}.key"),
                    destination=self._require_str(mapping.get("destination"), f"{entry_ctx}.destination"),
                    substitutions=tuple(
                        self._require_str(value, f"{entry_ctx}.substitutions") for value in substitutions
                    ),
                    enabled=self._require_bool(mapping.get("enabled"), f"{entry_ctx}.enabled"),
                )
            )
        return tuple(options)

    def _decode_frame(self, raw: object, context: str) -> ReturnFrame:
        mapping = self._require_mapping(raw, context)
        return ReturnFrame(
            node=self._require_str(mapping.get("node"), f"{context}.node"),
            pointer=self._require_non_negative_int(mapping.get("pointer"), f"{context}.pointer"),
        )

    def _decode_visits(self, raw: object) -> Tuple[Tuple[str, int], ...]:
        mapping = self._require_mapping(raw, "state.visits")
        visits: List[Tuple[str, int]] = []
        for name, count in mapping.items():
            if not isinstance(name, str):
                raise CheckpointFormatError("state.visits keys must be strings.")
            visits.append((name, self._require_non_negative_int(count, f"state.visits.{name}")))
        return tuple(sorted(visit for visit in visits if visit[1] > 0))

    @staticmethod
    def _validate_against(checkpoint: Checkpoint, program: Program) -> None:
        node = program.node(checkpoint.node)
        if node is None:
            raise CheckpointFormatError(f"Checkpoint references unknown node '{checkpoint.node}'.")
        if checkpoint.pointer > len(node.instructions):
            raise CheckpointFormatError(
                f"Checkpoint pointer {checkpoint.pointer} is outside node '{checkpoint.node}'."
            )
        for frame in checkpoint.call_stack:
            frame_node = program.node(frame.node)
            if frame_node is None or frame.pointer > len(frame_node.instructions):
                raise CheckpointFormatError(
                    f"Return frame {frame.node}@{frame.pointer} does not fit the program."
                )
        for option in checkpoint.pending_options + checkpoint.offered_options:
            if option.destination not in program.nodes:
                raise CheckpointFormatError(
                    f"Option '{option.key}' targets unknown node '{option.destination}'."
                )

    @staticmethod
    def _require_mapping(value: object, context: str) -> Mapping[str, Any]:
        if not isinstance(value, Mapping):
            raise CheckpointFormatError(f"{context} must be an object.")
        return value

    @staticmethod
    def _require_list(value: object, context: str) -> list:
        if not isinstance(value, list):
            raise CheckpointFormatError(f"{context} must be a list.")
        return value

    @staticmethod
    def _require_str(value: object, context: str) -> str:
        if not isinstance(value, str):
            raise CheckpointFormatError(f"{context} must be a string.")
        return value

    @staticmethod
    def _require_bool(value: object, context: str) -> bool:
        if not isinstance(value, bool):
            raise CheckpointFormatError(f"{context} must be a boolean.")
        return value

    @staticmethod
    def _require_non_negative_int(value: object, context: str) -> int:
        if isinstance(value, bool) or not isinstance(value, int) or value < 0:
            raise CheckpointFormatError(f"{context} must be a non-negative integer.")
        return value


__all__ = ["CheckpointCodec", "CheckpointPayload"]
