"""Upload-shaped PLC configuration <-> UI variable tree.

The persisted shape is a flat list of address mappings per PLC. The UI works
on a flat list of variables where bit-packed "channel" registers are followed
by one boolean row per declared bit. Parent/child relations live only in the
``parent_id`` back-reference; ``children`` is materialized when serializing.
"""

from __future__ import annotations

import datetime as dt
import enum
import hashlib
import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence


class ConfigStructureError(ValueError):
    """The uploaded document does not have the shape normalization needs."""


class BitMappingError(ConfigStructureError):
    """Bit metadata of a channel is inconsistent (duplicate/missing/negative positions)."""


class DataKind(str, enum.Enum):
    BOOL = "bool"
    CHANNEL = "channel"
    OTHER = "other"

    @classmethod
    def from_data_type(cls, data_type: Any) -> "DataKind":
        if data_type == "bool":
            return cls.BOOL
        if data_type == "channel":
            return cls.CHANNEL
        return cls.OTHER


PLC_STATUSES = ("active", "maintenance", "error")


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


@dataclass
class NormalizedVariable:
    id: str
    type: DataKind
    plc_reg_add: str
    opcua_reg_add: str
    description: str
    data_type: str
    parent_id: Optional[str] = None
    bit_position: Optional[int] = None
    has_children: Optional[bool] = None
    is_bit_row: Optional[bool] = None
    metadata: Optional[Dict[str, Any]] = None

    @property
    def is_child(self) -> bool:
        return self.parent_id is not None

    def to_dict(self, *, children: Optional[Sequence["NormalizedVariable"]] = None) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "type": self.type.value,
            "plc_reg_add": self.plc_reg_add,
            "opcua_reg_add": self.opcua_reg_add,
            "description": self.description,
            "data_type": self.data_type,
        }
        if self.parent_id is not None:
            out["parentId"] = self.parent_id
        if self.bit_position is not None:
            out["bitPosition"] = self.bit_position
        if self.has_children is not None:
            out["hasChildren"] = self.has_children
        if self.is_bit_row:
            out["isBitRow"] = True
        if self.metadata is not None:
            out["metadata"] = self.metadata
        if children is not None:
            out["children"] = [c.to_dict() for c in children]
        return out

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NormalizedVariable":
        """Accepts the camelCase wire shape produced by :meth:`to_dict`."""
        raw_type = data.get("type")
        try:
            kind = DataKind(raw_type)
        except ValueError:
            kind = DataKind.from_data_type(data.get("data_type"))
        bit_position = data.get("bitPosition")
        return cls(
            id=str(data["id"]),
            type=kind,
            plc_reg_add=str(data.get("plc_reg_add") or ""),
            opcua_reg_add=str(data.get("opcua_reg_add") or ""),
            description=str(data.get("description") or ""),
            data_type=str(data.get("data_type") or kind.value),
            parent_id=(str(data["parentId"]) if data.get("parentId") is not None else None),
            bit_position=(int(bit_position) if bit_position is not None else None),
            has_children=(bool(data["hasChildren"]) if data.get("hasChildren") is not None else None),
            is_bit_row=(bool(data["isBitRow"]) if data.get("isBitRow") is not None else None),
            metadata=data.get("metadata"),
        )


@dataclass
class NormalizedPLC:
    id: str
    plc_name: str
    plc_ip: str
    opcua_url: str
    plc_no: Optional[int] = None
    status: str = "maintenance"
    last_checked: dt.datetime = field(default_factory=utcnow)
    is_connected: bool = False
    created_at: dt.datetime = field(default_factory=utcnow)
    variables: List[NormalizedVariable] = field(default_factory=list)
    bool_count: int = 0
    channel_count: int = 0

    @property
    def register_count(self) -> int:
        return len(self.variables)

    def to_dict(self, *, variables: Optional[Sequence[NormalizedVariable]] = None) -> Dict[str, Any]:
        """Wire shape for UI consumers.

        ``variables`` overrides the list that is rendered (e.g. a filtered
        view); counts always describe the whole PLC.
        """
        rows = self.variables if variables is None else list(variables)
        index = build_child_index(self.variables)
        rendered = []
        for v in rows:
            if v.has_children:
                rendered.append(v.to_dict(children=index.get(v.id, [])))
            else:
                rendered.append(v.to_dict())
        return {
            "id": self.id,
            "plc_name": self.plc_name,
            "plc_no": self.plc_no,
            "plc_ip": self.plc_ip,
            "opcua_url": self.opcua_url,
            "status": self.status,
            "last_checked": self.last_checked.isoformat(),
            "is_connected": self.is_connected,
            "created_at": self.created_at.isoformat(),
            "variables": rendered,
            "registerCount": self.register_count,
            "boolCount": self.bool_count,
            "channelCount": self.channel_count,
        }


# -----------------
# Id strategies
# -----------------

IdFactory = Callable[[Mapping[str, Any], int], str]


def content_hash_ids(plc: Mapping[str, Any], index: int) -> str:
    """Stable id derived from the PLC identity and its position in the document."""
    key = "|".join(
        str(plc.get(k, "")) for k in ("plc_name", "plc_no", "plc_ip", "opcua_url")
    )
    return hashlib.sha1(f"{index}|{key}".encode("utf-8")).hexdigest()[:12]


def counter_ids(prefix: str = "plc-") -> IdFactory:
    counter = itertools.count(1)

    def _next(_plc: Mapping[str, Any], _index: int) -> str:
        return f"{prefix}{next(counter)}"

    return _next


# -----------------
# Bit expansion
# -----------------


@dataclass(frozen=True)
class BitFallback:
    """Synthesized bit rows for multi-bit registers uploaded without metadata."""

    suffixes: tuple[str, ...] = ("_BC",)
    bit_count: int = 8

    def applies_to(self, mapping: Mapping[str, Any]) -> bool:
        if self.bit_count <= 0:
            return False
        name = str(mapping.get("opcua_reg_add") or "")
        return any(name.endswith(s) for s in self.suffixes if s)


def _bit_mappings(mapping: Mapping[str, Any]) -> Dict[str, Any]:
    metadata = mapping.get("metadata")
    if not isinstance(metadata, Mapping):
        return {}
    bits = metadata.get("bit_mappings")
    if not isinstance(bits, Mapping):
        return {}
    return dict(bits)


def _bit_position(parent: str, key: str, bit: Any) -> int:
    if not isinstance(bit, Mapping) or bit.get("bit_position") is None:
        raise BitMappingError(f"{parent}: bit mapping '{key}' has no bit_position")
    raw = bit["bit_position"]
    if isinstance(raw, bool):
        raise BitMappingError(f"{parent}: bit mapping '{key}' has a non-integer bit_position")
    try:
        pos = int(raw)
    except (TypeError, ValueError):
        raise BitMappingError(f"{parent}: bit mapping '{key}' has a non-integer bit_position") from None
    if pos != raw or pos < 0:
        raise BitMappingError(f"{parent}: bit mapping '{key}' has invalid bit_position {raw!r}")
    return pos


def expand_bit_mappings(mapping: Mapping[str, Any]) -> List[NormalizedVariable]:
    """One bool child per declared bit of a channel mapping, sorted by position."""
    parent = str(mapping.get("opcua_reg_add") or "")
    children: List[NormalizedVariable] = []
    seen: Dict[int, str] = {}
    for key, bit in _bit_mappings(mapping).items():
        pos = _bit_position(parent, key, bit)
        if pos in seen:
            raise BitMappingError(f"{parent}: bit position {pos} declared by both '{seen[pos]}' and '{key}'")
        seen[pos] = key
        children.append(
            NormalizedVariable(
                id=f"{parent}:{pos}",
                type=DataKind.BOOL,
                plc_reg_add=str(bit.get("address") or ""),
                opcua_reg_add=f"{parent}_bit{pos}",
                description=str(bit.get("description") or ""),
                data_type="bool",
                parent_id=parent,
                bit_position=pos,
            )
        )
    children.sort(key=lambda c: c.bit_position or 0)
    return children


def synthesize_fallback_bits(mapping: Mapping[str, Any], fallback: BitFallback) -> List[NormalizedVariable]:
    parent = str(mapping.get("opcua_reg_add") or "")
    base_reg = str(mapping.get("plc_reg_add") or "")
    label = mapping.get("description") or parent
    out: List[NormalizedVariable] = []
    for pos in range(fallback.bit_count):
        nn = f"{pos:02d}"
        out.append(
            NormalizedVariable(
                id=f"{parent}:{pos}",
                type=DataKind.BOOL,
                plc_reg_add=f"{base_reg}.{nn}",
                opcua_reg_add=f"{parent}_bit{pos}",
                description=f"Bit {nn} of {label}",
                data_type="bool",
                parent_id=parent,
                bit_position=pos,
                is_bit_row=True,
            )
        )
    return out


# -----------------
# Normalization
# -----------------


def normalize_address_mapping(
    mapping: Mapping[str, Any],
    *,
    bit_fallback: Optional[BitFallback] = None,
) -> List[NormalizedVariable]:
    kind = DataKind.from_data_type(mapping.get("data_type"))
    name = str(mapping.get("opcua_reg_add") or "")
    base = NormalizedVariable(
        id=name,
        type=kind,
        plc_reg_add=str(mapping.get("plc_reg_add") or ""),
        opcua_reg_add=name,
        description=str(mapping.get("description") or ""),
        data_type=str(mapping.get("data_type") or ""),
        metadata=(dict(mapping["metadata"]) if isinstance(mapping.get("metadata"), Mapping) else None),
    )

    if kind is DataKind.BOOL:
        return [base]

    if kind is DataKind.CHANNEL:
        children = expand_bit_mappings(mapping)
        if children:
            base.has_children = True
            return [base, *children]

    if bit_fallback is not None and not _bit_mappings(mapping) and bit_fallback.applies_to(mapping):
        base.type = DataKind.CHANNEL
        base.has_children = True
        return [base, *synthesize_fallback_bits(mapping, bit_fallback)]

    if kind is DataKind.CHANNEL:
        base.has_children = False
    return [base]


def _count_kinds(mappings: Iterable[Mapping[str, Any]]) -> tuple[int, int]:
    bools = 0
    channels = 0
    for m in mappings:
        kind = DataKind.from_data_type(m.get("data_type"))
        if kind is DataKind.BOOL:
            bools += 1
        elif kind is DataKind.CHANNEL:
            channels += 1
            bools += len(_bit_mappings(m))
    return bools, channels


def address_mappings_of(plc: Mapping[str, Any]) -> List[Mapping[str, Any]]:
    mappings = plc.get("address_mappings")
    if not isinstance(mappings, list):
        return []
    return [m for m in mappings if isinstance(m, Mapping)]


def normalize_plc(
    plc: Mapping[str, Any],
    *,
    plc_id: str,
    status: str = "maintenance",
    is_connected: bool = False,
    last_checked: Optional[dt.datetime] = None,
    created_at: Optional[dt.datetime] = None,
    bit_fallback: Optional[BitFallback] = None,
) -> NormalizedPLC:
    """Normalize one raw PLC entry. Runtime fields come from the caller."""
    mappings = address_mappings_of(plc)
    variables: List[NormalizedVariable] = []
    for m in mappings:
        variables.extend(normalize_address_mapping(m, bit_fallback=bit_fallback))
    bool_count, channel_count = _count_kinds(mappings)

    now = utcnow()
    plc_no = plc.get("plc_no")
    return NormalizedPLC(
        id=plc_id,
        plc_name=str(plc.get("plc_name") or ""),
        plc_no=(int(plc_no) if plc_no is not None else None),
        plc_ip=str(plc.get("plc_ip") or ""),
        opcua_url=str(plc.get("opcua_url") or ""),
        status=status,
        last_checked=last_checked or now,
        is_connected=is_connected,
        created_at=created_at or now,
        variables=variables,
        bool_count=bool_count,
        channel_count=channel_count,
    )


def normalize_plc_config(
    doc: Any,
    *,
    id_factory: Optional[IdFactory] = None,
    now: Optional[dt.datetime] = None,
    bit_fallback: Optional[BitFallback] = None,
) -> List[NormalizedPLC]:
    if not isinstance(doc, Mapping) or not isinstance(doc.get("plcs"), list):
        raise ConfigStructureError("Invalid JSON structure: missing plcs array")

    make_id = id_factory or content_hash_ids
    ts = now or utcnow()
    out: List[NormalizedPLC] = []
    for index, plc in enumerate(doc["plcs"]):
        if not isinstance(plc, Mapping):
            raise ConfigStructureError(f"plcs[{index}] is not an object")
        out.append(
            normalize_plc(
                plc,
                plc_id=make_id(plc, index),
                last_checked=ts,
                created_at=ts,
                bit_fallback=bit_fallback,
            )
        )
    return out


# -----------------
# Parent/child access
# -----------------


def get_parent_variables(variables: Iterable[NormalizedVariable]) -> List[NormalizedVariable]:
    return [v for v in variables if v.parent_id is None]


def get_child_variables(variables: Iterable[NormalizedVariable], parent_id: str) -> List[NormalizedVariable]:
    return [v for v in variables if v.parent_id == parent_id]


def build_child_index(variables: Iterable[NormalizedVariable]) -> Dict[str, List[NormalizedVariable]]:
    index: Dict[str, List[NormalizedVariable]] = {}
    for v in variables:
        if v.parent_id is not None:
            index.setdefault(v.parent_id, []).append(v)
    for children in index.values():
        children.sort(key=lambda c: c.bit_position or 0)
    return index


def find_orphans(variables: Sequence[NormalizedVariable]) -> List[NormalizedVariable]:
    """Children whose ``parent_id`` does not name exactly one expandable parent."""
    parents: Dict[str, int] = {}
    for v in variables:
        if v.parent_id is None and v.has_children:
            parents[v.id] = parents.get(v.id, 0) + 1
    return [v for v in variables if v.parent_id is not None and parents.get(v.parent_id) != 1]


# -----------------
# Denormalization
# -----------------


def check_bit_children(variables: Sequence[NormalizedVariable]) -> None:
    """Every child needs a non-negative integer bit position, unique under its parent."""
    seen: Dict[str, Dict[int, str]] = {}
    for v in variables:
        if v.parent_id is None:
            continue
        pos = v.bit_position
        if pos is None or isinstance(pos, bool) or not isinstance(pos, int):
            raise BitMappingError(f"{v.parent_id}: bit '{v.id}' has no bit position")
        if pos < 0:
            raise BitMappingError(f"{v.parent_id}: bit '{v.id}' has invalid bit position {pos}")
        taken = seen.setdefault(v.parent_id, {})
        if pos in taken:
            raise BitMappingError(f"{v.parent_id}: bit position {pos} used by both '{taken[pos]}' and '{v.id}'")
        taken[pos] = v.id


def denormalize_plc(plc: NormalizedPLC) -> Dict[str, Any]:
    """Rebuild the flat upload/storage shape of a normalized PLC.

    Raises :class:`BitMappingError` when child bit positions are missing,
    negative or collide, since they key the rebuilt ``bit_mappings``.
    """
    check_bit_children(plc.variables)
    mappings: List[Dict[str, Any]] = []
    for v in get_parent_variables(plc.variables):
        mapping: Dict[str, Any] = {
            "plc_reg_add": v.plc_reg_add,
            "data_type": v.data_type,
            "opcua_reg_add": v.opcua_reg_add,
            "description": v.description,
        }
        if v.type is DataKind.CHANNEL and v.has_children:
            children = get_child_variables(plc.variables, v.id)
            bit_mappings: Dict[str, Dict[str, Any]] = {}
            for child in children:
                pos = int(child.bit_position or 0)
                bit_mappings[f"bit_{pos:02d}"] = {
                    "address": child.plc_reg_add,
                    "description": child.description,
                    "bit_position": pos,
                }
            mapping["metadata"] = {"bit_count": len(children), "bit_mappings": bit_mappings}
        mappings.append(mapping)

    return {
        "plc_name": plc.plc_name,
        "plc_no": plc.plc_no or 1,
        "plc_ip": plc.plc_ip,
        "opcua_url": plc.opcua_url,
        "address_mappings": mappings,
    }
