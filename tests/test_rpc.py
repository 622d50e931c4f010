import json
import urllib.parse

import pytest

from notebooklm_rpc import rpc
from notebooklm_rpc.errors import AuthenticationError

from conftest import frame, result_item, sentinel_item


class TestEncoding:
    def test_request_body_layout(self):
        body = rpc.encode_request_body("wXbhsf", [None, 1, None, [2]], "csrf tok", "123")

        assert body.endswith("&")
        fields = urllib.parse.parse_qs(body.rstrip("&"))
        assert fields["at"] == ["csrf tok"]
        assert fields["f.sid"] == ["123"]
        assert json.loads(fields["f.req"][0]) == [[["wXbhsf", "[null,1,null,[2]]", None, "generic"]]]

    def test_empty_tokens_are_omitted(self):
        body = rpc.encode_request_body("wXbhsf", [])
        assert "at=" not in body
        assert "f.sid=" not in body

    def test_query_body_envelope(self):
        body = rpc.encode_query_body(["q"], "csrf")
        f_req = json.loads(urllib.parse.parse_qs(body.rstrip("&"))["f.req"][0])
        assert f_req == [None, '["q"]']

    def test_rpc_url_params(self):
        url = rpc.build_rpc_url("rLM1Ne", "/notebook/nb-1", "boq_bl", 200000, session_id="sid")
        params = urllib.parse.parse_qs(urllib.parse.urlparse(url).query)

        assert url.startswith("https://notebooklm.google.com/_/LabsTailwindUi/data/batchexecute?")
        assert params["rpcids"] == ["rLM1Ne"]
        assert params["source-path"] == ["/notebook/nb-1"]
        assert params["bl"] == ["boq_bl"]
        assert params["_reqid"] == ["200000"]
        assert params["rt"] == ["c"]
        assert params["f.sid"] == ["sid"]

    def test_decode_request_body_masks_csrf(self):
        body = rpc.encode_request_body("wXbhsf", ["nb-1"], "secret")
        decoded = rpc.decode_request_body(body)
        assert decoded["params"] == ["nb-1"]
        assert decoded["at"] == "(csrf_token)"
        assert "secret" not in json.dumps(decoded)


class TestDecodeResponse:
    def test_prefix_is_optional(self):
        text = frame(result_item("wXbhsf", [1, 2]))
        assert rpc.decode_response(text) == rpc.decode_response(text[len(")]}'"):])

    def test_length_lines_and_bare_json(self):
        text = ')]}\'\n\n12\n[["di",123]]\n[["e",4]]\n'
        assert rpc.decode_response(text) == [[["di", 123]], [["e", 4]]]

    def test_noise_is_skipped(self):
        text = ')]}\'\n\n25\n{not json\n[["wrb.fr","x","[1]"]]\ngarbage\n'
        assert rpc.decode_response(text) == [[["wrb.fr", "x", "[1]"]]]

    def test_empty_body(self):
        assert rpc.decode_response(")]}'\n") == []


class TestExtraction:
    def test_extracts_matching_call(self):
        fragments = rpc.decode_response(frame(
            result_item("other", ["no"]),
            result_item("wXbhsf", [[["Notebook 1", [], "nb-id-1"]]]),
        ))
        assert rpc.extract_rpc_result(fragments, "wXbhsf") == [[["Notebook 1", [], "nb-id-1"]]]

    def test_missing_call_returns_none(self):
        fragments = rpc.decode_response(frame(result_item("other", [1])))
        assert rpc.extract_rpc_result(fragments, "wXbhsf") is None

    def test_sentinel_raises(self):
        fragments = rpc.decode_response(frame(sentinel_item("rLM1Ne")))
        with pytest.raises(AuthenticationError, match="RPC Error 16"):
            rpc.extract_rpc_result(fragments, "rLM1Ne")

    def test_pre_decoded_chunks(self):
        # already-decoded chunks: a list of item lists
        error_payload = [[["wrb.fr", "rLM1Ne", None, None, None, [16], "generic"]]]
        with pytest.raises(AuthenticationError):
            rpc.extract_rpc_result(error_payload, "rLM1Ne")

    def test_first_result_wins(self):
        fragments = [[result_item("x", ["first"])], [sentinel_item("x")]]
        assert rpc.extract_rpc_result(fragments, "x") == ["first"]

    def test_rotation_after_result_is_reported(self):
        rotated = []
        fragments = rpc.decode_response(frame(
            result_item("x", ["ok"]),
            ["af.httprm", 1, "sid-rotated"],
        ))

        assert rpc.extract_rpc_result(fragments, "x", on_session_id=rotated.append) == ["ok"]
        assert rotated == ["sid-rotated"]

    def test_non_string_payload_passes_through(self):
        fragments = [[["wrb.fr", "x", [1, [2]], None, None, None, "generic"]]]
        assert rpc.extract_rpc_result(fragments, "x") == [1, [2]]

    def test_unparseable_payload_string_is_returned_raw(self):
        fragments = [[["wrb.fr", "x", "not json", None]]]
        assert rpc.extract_rpc_result(fragments, "x") == "not json"

    def test_all_results_raise_on_any_sentinel(self):
        fragments = [[result_item("q", ["a"])], [sentinel_item("q")]]
        with pytest.raises(AuthenticationError):
            rpc.extract_all_results(fragments)

    def test_all_results_in_order(self):
        fragments = [[result_item("q", ["a"])], [result_item("q", ["b"])]]
        assert rpc.extract_all_results(fragments) == [["a"], ["b"]]


class TestDig:
    tree = [["a", None, [1, 2]], "b"]

    def test_reads_nested(self):
        assert rpc.dig(self.tree, 0, 2, 1) == 2

    def test_drift_returns_default(self):
        assert rpc.dig(self.tree, 0, 9) is None
        assert rpc.dig(self.tree, 1, 0, default="x") == "x"
        assert rpc.dig(None, 0, default=[]) == []

    def test_none_leaf_returns_default(self):
        assert rpc.dig(self.tree, 0, 1, default="d") == "d"

    def test_typed_accessors(self):
        assert rpc.dig_str(self.tree, 0, 0) == "a"
        assert rpc.dig_str(self.tree, 0, 2) is None
        assert rpc.dig_list(self.tree, 0, 0) == []
        assert rpc.dig_int(self.tree, 0, 2, 0) == 1
        assert rpc.dig_int([True], 0) is None

    def test_unwrap_id(self):
        assert rpc.unwrap_id(["src-1"]) == "src-1"
        assert rpc.unwrap_id("src-1") == "src-1"
        assert rpc.unwrap_id([]) is None
        assert rpc.unwrap_id("") is None
