"""Tests for request shape selection and the function manifest."""

import json

import pytest
from protocol.exceptions import InvalidValueError, MissingRequiredValueError
from protocol.functions import FunctionCall
from protocol.request import (
    FunctionManifest,
    ManifestEntry,
    RequestEncoder,
    RequestShape,
)


def fixed_clock():
    return 1700000000.7


@pytest.fixture
def encoder():
    return RequestEncoder(clock=fixed_clock)


class TestShapeSelection:
    def test_single(self, encoder):
        encoder.add_call(FunctionCall("ProductList_Load_Query").set_count(1))
        doc = encoder.finalize("PS", include_timestamp=False)
        assert doc.shape is RequestShape.SINGLE
        assert doc.to_dict() == {
            "Store_Code": "PS",
            "Function": "ProductList_Load_Query",
            "Count": 1,
        }
        assert "Iterations" not in doc
        assert "Operations" not in doc

    def test_iterations(self, encoder):
        encoder.add_call(FunctionCall("ProductList_Load_Query").set_count(2))
        encoder.add_call(FunctionCall("ProductList_Load_Query").set_count(5))
        payload = encoder.finalize("PS", include_timestamp=False).to_dict()

        assert payload["Store_Code"] == "PS"
        assert "Miva_Request_Timestamp" not in payload
        assert payload["Function"] == "ProductList_Load_Query"
        assert payload["Iterations"] == [{"Count": 2}, {"Count": 5}]

    def test_operations(self, encoder):
        encoder.add_call(FunctionCall("CategoryList_Load_Query").set_count(1))
        encoder.add_call(FunctionCall("Product_Insert").set_param("Product_Code", "a"))
        encoder.add_call(FunctionCall("Product_Update").set_param("Edit_Product", "a"))
        encoder.add_call(FunctionCall("Product_Insert").set_param("Product_Code", "b"))
        doc = encoder.finalize("PS", include_timestamp=False)
        payload = doc.to_dict()

        assert doc.shape is RequestShape.OPERATIONS
        assert "Function" not in payload
        assert payload["Operations"] == [
            {"Function": "CategoryList_Load_Query", "Count": 1},
            {
                "Function": "Product_Insert",
                "Iterations": [{"Product_Code": "a"}, {"Product_Code": "b"}],
            },
            {"Function": "Product_Update", "Edit_Product": "a"},
        ]
        assert doc.manifest.names == ["CategoryList_Load_Query", "Product_Insert", "Product_Update"]
        assert [e.call_count for e in doc.manifest] == [1, 2, 1]


class TestFinalize:
    def test_timestamp_is_epoch_seconds(self, encoder):
        encoder.add_call(FunctionCall("Product_Insert"))
        payload = encoder.finalize("PS").to_dict()
        assert payload["Miva_Request_Timestamp"] == 1700000000
        assert list(payload)[:2] == ["Store_Code", "Miva_Request_Timestamp"]

    def test_each_finalize_reads_clock(self):
        ticks = iter([100.0, 200.0])
        encoder = RequestEncoder(clock=lambda: next(ticks))
        encoder.add_call(FunctionCall("Product_Insert"))
        assert encoder.finalize("PS")["Miva_Request_Timestamp"] == 100
        assert encoder.finalize("PS")["Miva_Request_Timestamp"] == 200

    def test_missing_store_code(self, encoder):
        encoder.add_call(FunctionCall("Product_Insert"))
        with pytest.raises(MissingRequiredValueError, match="store_code"):
            encoder.finalize("")

    def test_no_calls(self, encoder):
        with pytest.raises(MissingRequiredValueError):
            encoder.finalize("PS")

    def test_document_is_isolated_from_caller(self, encoder):
        call = FunctionCall("Product_Insert").set_param("Tags", ["a"])
        encoder.add_call(call)
        doc = encoder.finalize("PS", include_timestamp=False)

        call.set_param("Product_Code", "late")
        doc.to_dict()["Tags"].append("mutated")

        assert doc.to_dict() == {"Store_Code": "PS", "Function": "Product_Insert", "Tags": ["a"]}

    def test_body_bytes_are_json(self, encoder):
        encoder.add_call(FunctionCall("Product_Insert").set_param("Product_Name", "Café"))
        doc = encoder.finalize("PS", include_timestamp=False)
        body = doc.to_bytes()
        assert json.loads(body.decode("utf-8")) == doc.to_dict()
        assert body == doc.to_json().encode("utf-8")

    def test_clear(self, encoder):
        encoder.add_call(FunctionCall("Product_Insert"))
        encoder.clear()
        assert encoder.is_empty


class TestFunctionManifest:
    def test_empty_rejected(self):
        with pytest.raises(InvalidValueError, match="Empty"):
            FunctionManifest(())

    def test_zero_count_rejected(self):
        with pytest.raises(InvalidValueError):
            FunctionManifest.from_pairs([("Product_Insert", 0)])

    def test_coerce_names(self):
        m = FunctionManifest.coerce(["A", "B"])
        assert list(m) == [ManifestEntry("A", 1), ManifestEntry("B", 1)]

    def test_coerce_grouped_mapping(self):
        m = FunctionManifest.coerce({"A": [1], "B": [1, 1], "C": []})
        assert [(e.function_name, e.call_count) for e in m] == [("A", 1), ("B", 2), ("C", 1)]

    def test_coerce_pairs(self):
        m = FunctionManifest.coerce([("Product_Insert", 2)])
        assert m.count_for("Product_Insert") == 2
        assert "Product_Insert" in m
        assert "Other" not in m

    def test_encoder_manifest_matches_grouping(self, encoder):
        encoder.add_call(FunctionCall("B"))
        encoder.add_call(FunctionCall("A"))
        encoder.add_call(FunctionCall("B"))
        assert [(e.function_name, e.call_count) for e in encoder.manifest()] == [("B", 2), ("A", 1)]

    def test_coerce_single_name_string(self):
        m = FunctionManifest.coerce("Product_Insert")
        assert m.names == ["Product_Insert"]
        assert m.count_for("Product_Insert") == 1
