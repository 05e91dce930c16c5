"""Layout serialization: self-describing JSON plus a compact binary form.

Both decoders first produce a plain *document* (the JSON shape, camelCase
keys), run it through the ordered migration chain up to
:data:`SCHEMA_VERSION` and only then build the frozen :class:`Layout`. An
unknown version, a malformed payload or a dangling room reference is a
:class:`DecodeError`; nothing is ever decoded on a best-effort basis.

Version history:

* 1 - rooms without ``depth``, corridors without ``tag``.
* 2 - adds room ``depth`` and corridor ``tag`` (primary / secondary).

Binary layout (big-endian)::

    B   version
    HHq width, height, seed
    HH  room count, corridor count
    per room:      H id, HHHH x y w h, B type (255 = none), [H depth v2+],
                   H doorway count, HH per doorway
    per corridor:  H id, B width, HH room a/b, [B tag v2+], B encoding,
                   H cell count, HH first cell, then either packed 2-bit
                   steps (encoding 1) or raw HH cells (encoding 0)
"""
from __future__ import annotations

import gzip
import json
import struct
from typing import Any, Callable, Dict, List, Tuple

from .errors import ConfigurationError, DecodeError
from .geometry import DIRECTIONS, Rect
from .model import ROOM_TYPE_CODES, SCHEMA_VERSION, Corridor, CorridorTag, Layout, Room, RoomType

SUPPORTED_VERSIONS = (1, 2)
GZIP_MAGIC = b"\x1f\x8b"
NO_TYPE = 255
RAW_CELLS, PACKED_CELLS = 0, 1
TAG_CODES = {CorridorTag.PRIMARY: 0, CorridorTag.SECONDARY: 1}
_CODE_TAGS = {v: k for k, v in TAG_CODES.items()}
_CODE_TYPES = {v: k for k, v in ROOM_TYPE_CODES.items()}

Document = Dict[str, Any]


# -- document <-> Layout ----------------------------------------------------------------------------


def layout_to_document(layout: Layout, schema_version: int = SCHEMA_VERSION) -> Document:
    if schema_version not in SUPPORTED_VERSIONS:
        raise ConfigurationError(f"cannot encode unsupported schema version {schema_version}", field="schemaVersion")
    rooms = []
    for r in layout.rooms:
        entry: Document = {
            "id": r.id,
            "bounds": {"x": r.bounds.x, "y": r.bounds.y, "width": r.bounds.w, "height": r.bounds.h},
            "type": r.room_type.value if r.room_type else None,
            "doorways": [[x, y] for x, y in r.doorways],
        }
        if schema_version >= 2:
            entry["depth"] = r.depth
        rooms.append(entry)
    corridors = []
    for c in layout.corridors:
        entry = {
            "id": c.id,
            "cells": [[x, y] for x, y in c.cells],
            "width": c.width,
            "rooms": [c.room_a, c.room_b],
        }
        if schema_version >= 2:
            entry["tag"] = c.tag.value
        corridors.append(entry)
    return {
        "schemaVersion": schema_version,
        "mapSize": {"width": layout.width, "height": layout.height},
        "seed": layout.seed,
        "rooms": rooms,
        "corridors": corridors,
    }


def _int(value: Any, what: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"{what} must be an integer (got {value!r})")
    return value


def _cell(value: Any, what: str) -> Tuple[int, int]:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        raise DecodeError(f"{what} must be an [x, y] pair (got {value!r})")
    return (_int(value[0], what), _int(value[1], what))


def document_to_layout(doc: Document) -> Layout:
    """Build a Layout from a current-version document."""
    try:
        size = doc["mapSize"]
        rooms = []
        for r in doc["rooms"]:
            b = r["bounds"]
            type_name = r.get("type")
            try:
                room_type = RoomType(type_name) if type_name is not None else None
            except ValueError:
                raise DecodeError(f"unknown room type {type_name!r}") from None
            rooms.append(
                Room(
                    id=_int(r["id"], "room id"),
                    bounds=Rect(
                        _int(b["x"], "room x"),
                        _int(b["y"], "room y"),
                        _int(b["width"], "room width"),
                        _int(b["height"], "room height"),
                    ),
                    room_type=room_type,
                    doorways=tuple(_cell(d, "doorway") for d in r["doorways"]),
                    depth=_int(r["depth"], "room depth"),
                )
            )
        ids = {r.id for r in rooms}
        if len(ids) != len(rooms):
            raise DecodeError("duplicate room id")
        corridors = []
        for c in doc["corridors"]:
            pair = c["rooms"]
            if not isinstance(pair, (list, tuple)) or len(pair) != 2:
                raise DecodeError("corridor rooms must be a two-element list")
            a, b_ = _int(pair[0], "corridor room"), _int(pair[1], "corridor room")
            if a not in ids or b_ not in ids:
                raise DecodeError(f"corridor {c.get('id')} references unknown room(s) {a}, {b_}")
            try:
                tag = CorridorTag(c["tag"])
            except ValueError:
                raise DecodeError(f"unknown corridor tag {c['tag']!r}") from None
            corridors.append(
                Corridor(
                    id=_int(c["id"], "corridor id"),
                    cells=tuple(_cell(p, "corridor cell") for p in c["cells"]),
                    width=_int(c["width"], "corridor width"),
                    room_a=a,
                    room_b=b_,
                    tag=tag,
                )
            )
        return Layout(
            width=_int(size["width"], "map width"),
            height=_int(size["height"], "map height"),
            seed=_int(doc["seed"], "seed"),
            rooms=tuple(rooms),
            corridors=tuple(corridors),
            schema_version=SCHEMA_VERSION,
        )
    except (KeyError, TypeError, AttributeError) as exc:
        raise DecodeError(f"malformed layout document: {exc!r}") from exc


# -- migrations -------------------------------------------------------------------------------------


def _upgrade_1_to_2(doc: Document) -> Document:
    for r in doc.get("rooms", []):
        r.setdefault("depth", 0)
    for c in doc.get("corridors", []):
        c.setdefault("tag", CorridorTag.PRIMARY.value if c.get("width") == 5 else CorridorTag.SECONDARY.value)
    doc["schemaVersion"] = 2
    return doc


# from-version -> transform producing from-version + 1
MIGRATIONS: Dict[int, Callable[[Document], Document]] = {1: _upgrade_1_to_2}


def migrate(doc: Document) -> Document:
    if not isinstance(doc, dict):
        raise DecodeError("layout document must be an object")
    version = doc.get("schemaVersion")
    if isinstance(version, bool) or not isinstance(version, int) or version not in SUPPORTED_VERSIONS:
        raise DecodeError(f"unsupported schema version {version!r}")
    while version < SCHEMA_VERSION:
        doc = MIGRATIONS[version](doc)
        version = doc["schemaVersion"]
    return doc


# -- textual ----------------------------------------------------------------------------------------


def encode_json(layout: Layout, schema_version: int = SCHEMA_VERSION, compress: bool = False) -> bytes:
    text = json.dumps(layout_to_document(layout, schema_version), sort_keys=True, separators=(",", ":"))
    data = text.encode("utf-8")
    return gzip.compress(data, mtime=0) if compress else data


def decode_document(data) -> Document:
    """Parse JSON (optionally gzipped) into an upgraded current-version document."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    if data[:2] == GZIP_MAGIC:
        try:
            data = gzip.decompress(data)
        except (OSError, EOFError) as exc:
            raise DecodeError(f"corrupt gzip payload: {exc}") from exc
    try:
        doc = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"invalid JSON layout: {exc}") from exc
    return migrate(doc)


def decode_json(data) -> Layout:
    return document_to_layout(decode_document(data))


# -- binary -----------------------------------------------------------------------------------------


def _pack_steps(cells) -> bytes:
    codes = []
    for (ax, ay), (bx, by) in zip(cells, cells[1:]):
        codes.append(DIRECTIONS.index((bx - ax, by - ay)))
    out = bytearray()
    for i in range(0, len(codes), 4):
        byte = 0
        for k, code in enumerate(codes[i : i + 4]):
            byte |= code << (2 * k)
        out.append(byte)
    return bytes(out)


def _contiguous(cells) -> bool:
    return all(abs(ax - bx) + abs(ay - by) == 1 for (ax, ay), (bx, by) in zip(cells, cells[1:]))


def encode_binary(layout: Layout, schema_version: int = SCHEMA_VERSION) -> bytes:
    if schema_version not in SUPPORTED_VERSIONS:
        raise ConfigurationError(f"cannot encode unsupported schema version {schema_version}", field="schemaVersion")
    out = bytearray()
    out += struct.pack(">B", schema_version)
    out += struct.pack(">HHq", layout.width, layout.height, layout.seed)
    out += struct.pack(">HH", len(layout.rooms), len(layout.corridors))
    for r in layout.rooms:
        b = r.bounds
        code = ROOM_TYPE_CODES[r.room_type] if r.room_type else NO_TYPE
        out += struct.pack(">HHHHHB", r.id, b.x, b.y, b.w, b.h, code)
        if schema_version >= 2:
            out += struct.pack(">H", r.depth)
        out += struct.pack(">H", len(r.doorways))
        for x, y in r.doorways:
            out += struct.pack(">HH", x, y)
    for c in layout.corridors:
        out += struct.pack(">HBHH", c.id, c.width, c.room_a, c.room_b)
        if schema_version >= 2:
            out += struct.pack(">B", TAG_CODES[c.tag])
        packed = bool(c.cells) and _contiguous(c.cells)
        out += struct.pack(">BH", PACKED_CELLS if packed else RAW_CELLS, len(c.cells))
        if packed:
            out += struct.pack(">HH", *c.cells[0])
            out += _pack_steps(c.cells)
        else:
            for x, y in c.cells:
                out += struct.pack(">HH", x, y)
    return bytes(out)


class _Reader:
    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    def take(self, fmt: str) -> tuple:
        size = struct.calcsize(fmt)
        if self.offset + size > len(self.data):
            raise DecodeError(f"truncated binary layout at offset {self.offset}")
        values = struct.unpack_from(fmt, self.data, self.offset)
        self.offset += size
        return values

    def raw(self, size: int) -> bytes:
        if self.offset + size > len(self.data):
            raise DecodeError(f"truncated binary layout at offset {self.offset}")
        chunk = self.data[self.offset : self.offset + size]
        self.offset += size
        return chunk


def _unpack_steps(first, count: int, packed: bytes) -> List[List[int]]:
    cells = [list(first)]
    x, y = first
    for i in range(count - 1):
        code = (packed[i // 4] >> (2 * (i % 4))) & 0b11
        dx, dy = DIRECTIONS[code]
        x, y = x + dx, y + dy
        cells.append([x, y])
    return cells


def binary_to_document(data: bytes) -> Document:
    reader = _Reader(bytes(data))
    (version,) = reader.take(">B")
    if version not in SUPPORTED_VERSIONS:
        raise DecodeError(f"unsupported schema version {version}")
    width, height, seed = reader.take(">HHq")
    room_count, corridor_count = reader.take(">HH")
    rooms = []
    for _ in range(room_count):
        rid, x, y, w, h, code = reader.take(">HHHHHB")
        entry: Document = {"id": rid, "bounds": {"x": x, "y": y, "width": w, "height": h}}
        if code == NO_TYPE:
            entry["type"] = None
        elif code in _CODE_TYPES:
            entry["type"] = _CODE_TYPES[code].value
        else:
            raise DecodeError(f"unknown room type code {code}")
        if version >= 2:
            (entry["depth"],) = reader.take(">H")
        (n_doors,) = reader.take(">H")
        entry["doorways"] = [list(reader.take(">HH")) for _ in range(n_doors)]
        rooms.append(entry)
    corridors = []
    for _ in range(corridor_count):
        cid, cw, a, b = reader.take(">HBHH")
        entry = {"id": cid, "width": cw, "rooms": [a, b]}
        if version >= 2:
            (tag_code,) = reader.take(">B")
            if tag_code not in _CODE_TAGS:
                raise DecodeError(f"unknown corridor tag code {tag_code}")
            entry["tag"] = _CODE_TAGS[tag_code].value
        encoding, n_cells = reader.take(">BH")
        if encoding == PACKED_CELLS and n_cells:
            first = reader.take(">HH")
            packed = reader.raw((n_cells - 1 + 3) // 4)
            entry["cells"] = _unpack_steps(first, n_cells, packed)
        elif encoding in (RAW_CELLS, PACKED_CELLS):
            entry["cells"] = [list(reader.take(">HH")) for _ in range(n_cells)]
        else:
            raise DecodeError(f"unknown corridor cell encoding {encoding}")
        corridors.append(entry)
    if reader.offset != len(reader.data):
        raise DecodeError(f"{len(reader.data) - reader.offset} trailing byte(s) after binary layout")
    doc = {
        "schemaVersion": version,
        "mapSize": {"width": width, "height": height},
        "seed": seed,
        "rooms": rooms,
        "corridors": corridors,
    }
    return migrate(doc)


def decode_binary(data: bytes) -> Layout:
    return document_to_layout(binary_to_document(data))


# -- convenience ------------------------------------------------------------------------------------


def encode(layout: Layout, fmt: str = "json", schema_version: int = SCHEMA_VERSION, compress: bool = False) -> bytes:
    if fmt == "json":
        return encode_json(layout, schema_version, compress=compress)
    if fmt == "binary":
        return encode_binary(layout, schema_version)
    raise ValueError(f"unknown layout format {fmt!r}")


def sniff_format(data: bytes) -> str:
    """Best guess of the format of ``data``: 'json' (incl. gzipped) or 'binary'."""
    data = bytes(data)
    if data[:2] == GZIP_MAGIC or data.lstrip()[:1] == b"{":
        return "json"
    return "binary"


def decode(data: bytes, fmt: str = "auto") -> Layout:
    if fmt == "auto":
        fmt = sniff_format(data)
    if fmt == "json":
        return decode_json(data)
    if fmt == "binary":
        return decode_binary(data)
    raise ValueError(f"unknown layout format {fmt!r}")


def validate_round_trip(layout: Layout) -> List[str]:
    """Encode ``layout`` in every supported form and report forms that do not decode back to it."""
    trips = (
        ("json", lambda: decode_json(encode_json(layout))),
        ("gzip json", lambda: decode_json(encode_json(layout, compress=True))),
        ("binary", lambda: decode_binary(encode_binary(layout))),
    )
    problems = []
    for name, trip in trips:
        try:
            decoded = trip()
        except (DecodeError, struct.error) as exc:
            problems.append(f"{name} round trip failed: {exc}")
            continue
        if decoded != layout:
            problems.append(f"{name} round trip altered the layout")
    return problems


__all__ = [
    "SUPPORTED_VERSIONS",
    "MIGRATIONS",
    "layout_to_document",
    "document_to_layout",
    "migrate",
    "encode_json",
    "decode_json",
    "decode_document",
    "encode_binary",
    "decode_binary",
    "binary_to_document",
    "encode",
    "decode",
    "sniff_format",
    "validate_round_trip",
]
