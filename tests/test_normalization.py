from __future__ import annotations

import datetime as dt

import pytest

from opcua_dashboard.services.normalization import (
    BitFallback,
    BitMappingError,
    ConfigStructureError,
    DataKind,
    NormalizedVariable,
    build_child_index,
    content_hash_ids,
    counter_ids,
    denormalize_plc,
    find_orphans,
    get_child_variables,
    get_parent_variables,
    normalize_address_mapping,
    normalize_plc_config,
)


def _channel(bits: dict) -> dict:
    return {
        "plc_reg_add": "1",
        "data_type": "channel",
        "opcua_reg_add": "P1_IO_1_BC",
        "description": "Door sensors",
        "metadata": {"bit_count": len(bits), "bit_mappings": bits},
    }


def test_bool_mapping_passes_through():
    out = normalize_address_mapping(
        {"plc_reg_add": "2100.02", "data_type": "bool", "opcua_reg_add": "X", "description": "Run"}
    )
    assert len(out) == 1
    v = out[0]
    assert v.id == "X"
    assert v.type is DataKind.BOOL
    assert v.parent_id is None
    assert v.has_children is None
    assert v.to_dict() == {
        "id": "X",
        "type": "bool",
        "plc_reg_add": "2100.02",
        "opcua_reg_add": "X",
        "description": "Run",
        "data_type": "bool",
    }


def test_channel_expands_children_sorted_by_bit_position(sample_doc):
    mapping = sample_doc["plcs"][0]["address_mappings"][1]
    out = normalize_address_mapping(mapping)

    parent, *children = out
    assert parent.type is DataKind.CHANNEL
    assert parent.has_children is True
    assert [c.bit_position for c in children] == [0, 1, 2]
    assert [c.description for c in children] == ["Front door", "Side door", "Rear door"]
    for c in children:
        assert c.type is DataKind.BOOL
        assert c.data_type == "bool"
        assert c.parent_id == parent.id
        assert c.id == f"P1_IO_1_BC:{c.bit_position}"
        assert c.opcua_reg_add == f"P1_IO_1_BC_bit{c.bit_position}"
    assert children[0].plc_reg_add == "1.00"


def test_channel_without_bits_has_no_children():
    out = normalize_address_mapping(
        {"plc_reg_add": "5", "data_type": "channel", "opcua_reg_add": "CH5", "description": "Spare"}
    )
    assert len(out) == 1
    assert out[0].type is DataKind.CHANNEL
    assert out[0].has_children is False


def test_empty_bit_mappings_is_a_childless_channel():
    out = normalize_address_mapping(_channel({}))
    assert len(out) == 1
    assert out[0].has_children is False


def test_unknown_data_type_is_passed_through_as_other():
    out = normalize_address_mapping(
        {"plc_reg_add": "D100", "data_type": "udint", "opcua_reg_add": "P1_D100", "description": "Counter"}
    )
    assert len(out) == 1
    assert out[0].type is DataKind.OTHER
    assert out[0].data_type == "udint"
    assert "hasChildren" not in out[0].to_dict()


def test_duplicate_bit_position_is_rejected():
    bits = {
        "bit_00": {"address": "1.00", "description": "A", "bit_position": 0},
        "bit_00b": {"address": "1.00", "description": "B", "bit_position": 0},
    }
    with pytest.raises(BitMappingError):
        normalize_address_mapping(_channel(bits))


@pytest.mark.parametrize("position", [None, -1, "x", True, 1.5])
def test_invalid_bit_position_is_rejected(position):
    bits = {"bit_00": {"address": "1.00", "description": "A", "bit_position": position}}
    with pytest.raises(BitMappingError):
        normalize_address_mapping(_channel(bits))


def test_bit_mapping_error_is_a_config_error():
    assert issubclass(BitMappingError, ConfigStructureError)


def test_counts_keep_their_asymmetry(sample_doc):
    (plc,) = normalize_plc_config(sample_doc, id_factory=counter_ids())
    # 1 bool + channel parent + 3 bits + 1 word
    assert plc.register_count == 6
    assert plc.bool_count == 4
    assert plc.channel_count == 1

    d = plc.to_dict()
    assert d["registerCount"] == 6
    assert d["boolCount"] == 4
    assert d["channelCount"] == 1


def test_runtime_fields_are_initialized(sample_doc):
    now = dt.datetime(2024, 5, 1, 12, 0, tzinfo=dt.timezone.utc)
    (plc,) = normalize_plc_config(sample_doc, id_factory=counter_ids(), now=now)
    assert plc.id == "plc-1"
    assert plc.status == "maintenance"
    assert plc.is_connected is False
    assert plc.last_checked == now
    assert plc.created_at == now
    assert plc.to_dict()["last_checked"] == "2024-05-01T12:00:00+00:00"


@pytest.mark.parametrize("doc", [{}, {"plcs": "not-an-array"}, [], None])
def test_missing_plcs_array_is_rejected(doc):
    with pytest.raises(ConfigStructureError, match="missing plcs array"):
        normalize_plc_config(doc)


def test_non_object_plc_entry_is_rejected():
    with pytest.raises(ConfigStructureError):
        normalize_plc_config({"plcs": [42]})


def test_empty_plcs_array_gives_no_plcs():
    assert normalize_plc_config({"plcs": []}) == []


def test_plc_without_mappings_has_no_variables():
    (plc,) = normalize_plc_config({"plcs": [{"plc_name": "Empty", "plc_no": 2}]})
    assert plc.variables == []
    assert plc.register_count == 0
    assert plc.bool_count == 0
    assert plc.channel_count == 0


def test_children_materialized_on_serialization(sample_doc):
    (plc,) = normalize_plc_config(sample_doc, id_factory=counter_ids())
    rows = plc.to_dict()["variables"]

    channel = next(r for r in rows if r["id"] == "P1_IO_1_BC")
    assert channel["hasChildren"] is True
    assert [c["bitPosition"] for c in channel["children"]] == [0, 1, 2]
    assert all(c["parentId"] == "P1_IO_1_BC" for c in channel["children"])

    # children are not embedded anywhere else
    assert "children" not in next(r for r in rows if r["id"] == "P1_D100")


def test_parent_child_linkage(sample_doc):
    (plc,) = normalize_plc_config(sample_doc, id_factory=counter_ids())
    parents = get_parent_variables(plc.variables)
    assert [p.id for p in parents] == ["P1_IO_2100_B02", "P1_IO_1_BC", "P1_D100"]

    index = build_child_index(plc.variables)
    assert list(index) == ["P1_IO_1_BC"]
    assert index["P1_IO_1_BC"] == get_child_variables(plc.variables, "P1_IO_1_BC")
    assert find_orphans(plc.variables) == []


def test_find_orphans_flags_dangling_children():
    child = NormalizedVariable(
        id="GONE:0",
        type=DataKind.BOOL,
        plc_reg_add="9.00",
        opcua_reg_add="GONE_bit0",
        description="",
        data_type="bool",
        parent_id="GONE",
        bit_position=0,
    )
    assert find_orphans([child]) == [child]


def test_denormalize_round_trips_upload_shape(sample_doc):
    raw = sample_doc["plcs"][0]
    (plc,) = normalize_plc_config(sample_doc, id_factory=counter_ids())
    assert denormalize_plc(plc) == raw


def test_denormalize_defaults_plc_no():
    (plc,) = normalize_plc_config({"plcs": [{"plc_name": "P", "plc_ip": "10.0.0.1", "opcua_url": "opc.tcp://x"}]})
    assert denormalize_plc(plc)["plc_no"] == 1


def test_variable_dict_round_trip(sample_doc):
    (plc,) = normalize_plc_config(sample_doc, id_factory=counter_ids())
    for v in plc.variables:
        assert NormalizedVariable.from_dict(v.to_dict()) == v


def test_counter_ids_are_sequential():
    doc = {"plcs": [{"plc_name": "A"}, {"plc_name": "B"}]}
    assert [p.id for p in normalize_plc_config(doc, id_factory=counter_ids("x"))] == ["x1", "x2"]


def test_content_hash_ids_are_stable_and_positional():
    plc = {"plc_name": "A", "plc_no": 1, "plc_ip": "10.0.0.1", "opcua_url": "opc.tcp://a"}
    assert content_hash_ids(plc, 0) == content_hash_ids(dict(plc), 0)
    assert content_hash_ids(plc, 0) != content_hash_ids(plc, 1)
    assert len(content_hash_ids(plc, 0)) == 12

    doc = {"plcs": [plc, plc]}
    first, second = normalize_plc_config(doc)
    assert first.id != second.id


class TestBitFallback:
    mapping = {"plc_reg_add": "200", "data_type": "word", "opcua_reg_add": "P1_200_BC", "description": "Status"}

    def test_not_applied_without_fallback(self):
        out = normalize_address_mapping(self.mapping)
        assert len(out) == 1
        assert out[0].type is DataKind.OTHER

    def test_synthesizes_bit_rows(self):
        out = normalize_address_mapping(self.mapping, bit_fallback=BitFallback())
        parent, *bits = out
        assert parent.type is DataKind.CHANNEL
        assert parent.has_children is True
        assert len(bits) == 8
        assert bits[3].plc_reg_add == "200.03"
        assert bits[3].description == "Bit 03 of Status"
        assert all(b.is_bit_row for b in bits)
        assert all(b.parent_id == "P1_200_BC" for b in bits)

    def test_suffix_must_match(self):
        mapping = dict(self.mapping, opcua_reg_add="P1_200")
        assert len(normalize_address_mapping(mapping, bit_fallback=BitFallback())) == 1

    def test_declared_bits_win_over_fallback(self, sample_doc):
        mapping = sample_doc["plcs"][0]["address_mappings"][1]
        out = normalize_address_mapping(mapping, bit_fallback=BitFallback())
        assert len(out) == 4
        assert not any(v.is_bit_row for v in out)

    def test_bool_is_never_expanded(self):
        mapping = dict(self.mapping, data_type="bool")
        assert len(normalize_address_mapping(mapping, bit_fallback=BitFallback())) == 1

    def test_fallback_bits_are_not_counted(self):
        doc = {"plcs": [{"plc_name": "P", "address_mappings": [self.mapping]}]}
        (plc,) = normalize_plc_config(doc, bit_fallback=BitFallback(bit_count=4))
        assert plc.register_count == 5
        assert plc.bool_count == 0
        assert plc.channel_count == 0


def test_declared_bits_on_word_block_fallback(sample_doc):
    mapping = dict(sample_doc["plcs"][0]["address_mappings"][1], data_type="word")
    out = normalize_address_mapping(mapping, bit_fallback=BitFallback())
    assert len(out) == 1
    assert out[0].type is DataKind.OTHER
    assert not any(v.is_bit_row for v in out)


def test_from_dict_coerces_flags():
    v = NormalizedVariable.from_dict(
        {"id": "X", "type": "channel", "data_type": "channel", "hasChildren": "yes", "isBitRow": 0}
    )
    assert v.has_children is True
    assert v.is_bit_row is False


class TestDenormalizeBitChecks:
    def _plc(self, sample_doc):
        (plc,) = normalize_plc_config(sample_doc, id_factory=counter_ids())
        return plc

    def test_missing_position(self, sample_doc):
        plc = self._plc(sample_doc)
        for v in plc.variables:
            if v.parent_id:
                v.bit_position = None
        with pytest.raises(BitMappingError):
            denormalize_plc(plc)

    def test_negative_position(self, sample_doc):
        plc = self._plc(sample_doc)
        plc.variables[-2].bit_position = -1
        with pytest.raises(BitMappingError):
            denormalize_plc(plc)

    def test_colliding_positions(self, sample_doc):
        plc = self._plc(sample_doc)
        for v in plc.variables:
            if v.parent_id:
                v.bit_position = 1
        with pytest.raises(BitMappingError):
            denormalize_plc(plc)

    def test_same_position_under_different_parents(self):
        doc = {
            "plcs": [
                {
                    "plc_name": "P",
                    "address_mappings": [
                        {
                            "plc_reg_add": str(n),
                            "data_type": "channel",
                            "opcua_reg_add": f"CH{n}",
                            "description": "",
                            "metadata": {
                                "bit_count": 1,
                                "bit_mappings": {"bit_00": {"address": f"{n}.00", "description": "", "bit_position": 0}},
                            },
                        }
                        for n in (1, 2)
                    ],
                }
            ]
        }
        (plc,) = normalize_plc_config(doc)
        assert len(denormalize_plc(plc)["address_mappings"]) == 2
