"""Tests for graph resolvers."""

from typing import Any

import pytest

from canvasflow.contracts import (
    CanvasSnapshot,
    DataType,
    Edge,
    Handle,
    HandleType,
    Node,
)
from canvasflow.plugins.resolvers import (
    GraphResolvers,
    InputResolutionError,
    build_output_result,
    output_item,
)


def _text_result(handle_id: str, text: str) -> dict[str, Any]:
    return build_output_result([output_item(DataType.TEXT, text, handle_id)])


def _canvas(*sources: tuple[str, str | None], labels: bool = False) -> CanvasSnapshot:
    """Sources s0..sN each feed target ``m`` on input handle m-in<i>.

    Each source is (node_id, text); text None means the source has no result.
    """
    nodes = {"m": Node("m", "c1", "TextMerger")}
    handles = {
        "m-out": Handle("m-out", "m", HandleType.OUTPUT, (DataType.TEXT,)),
    }
    edges = []
    for i, (node_id, text) in enumerate(sources):
        out_id = f"{node_id}-out"
        result = _text_result(out_id, text) if text is not None else None
        nodes[node_id] = Node(node_id, "c1", "Text", result=result)
        handles[out_id] = Handle(out_id, node_id, HandleType.OUTPUT, (DataType.TEXT,))
        handles[f"m-in{i}"] = Handle(
            f"m-in{i}",
            "m",
            HandleType.INPUT,
            (DataType.TEXT,),
            label=f"L{i}" if labels else None,
            # Reverse the handle order relative to edge order
            order=len(sources) - i,
        )
        edges.append(Edge(f"e{i}", "c1", node_id, out_id, "m", f"m-in{i}"))
    return CanvasSnapshot("c1", nodes, edges, handles)


class TestResultHelpers:
    def test_output_item(self) -> None:
        assert output_item(DataType.IMAGE, "k.png", "h1") == {
            "type": "Image",
            "data": "k.png",
            "output_handle_id": "h1",
        }

    def test_output_item_accepts_plain_type(self) -> None:
        assert output_item("Custom", 1, "h1")["type"] == "Custom"

    def test_build_output_result(self) -> None:
        result = build_output_result([output_item(DataType.TEXT, "x", "h1")])

        assert result["selected_output_index"] == 0
        assert result["outputs"][0]["items"][0]["data"] == "x"


class TestResolveSourceValue:
    def test_item_for_edge_source_handle(self) -> None:
        canvas = _canvas(("a", "hello"))

        value = GraphResolvers().resolve_source_value(canvas, canvas.edges[0])

        assert value is not None
        assert value["data"] == "hello"

    def test_source_without_result(self) -> None:
        canvas = _canvas(("a", None))

        assert GraphResolvers().resolve_source_value(canvas, canvas.edges[0]) is None

    def test_task_result_wins_over_node_result(self) -> None:
        canvas = _canvas(("a", "stale"))
        canvas.task_results["a"] = _text_result("a-out", "fresh")

        value = GraphResolvers().resolve_source_value(canvas, canvas.edges[0])

        assert value is not None
        assert value["data"] == "fresh"

    def test_selected_output_index(self) -> None:
        canvas = _canvas(("a", None))
        canvas.task_results["a"] = {
            "selected_output_index": 1,
            "outputs": [
                {"items": [output_item(DataType.TEXT, "first", "a-out")]},
                {"items": [output_item(DataType.TEXT, "second", "a-out")]},
            ],
        }

        value = GraphResolvers().resolve_source_value(canvas, canvas.edges[0])

        assert value is not None
        assert value["data"] == "second"

    def test_out_of_range_index_is_none(self) -> None:
        canvas = _canvas(("a", None))
        canvas.task_results["a"] = {
            "selected_output_index": 3,
            "outputs": [{"items": []}],
        }

        assert GraphResolvers().resolve_source_value(canvas, canvas.edges[0]) is None

    def test_missing_source_handle(self) -> None:
        canvas = _canvas(("a", "x"))
        del canvas.handles["a-out"]

        with pytest.raises(InputResolutionError, match="Source handle missing"):
            GraphResolvers().resolve_source_value(canvas, canvas.edges[0])

    def test_missing_source_node(self) -> None:
        canvas = _canvas(("a", "x"))
        del canvas.nodes["a"]

        with pytest.raises(InputResolutionError, match="Source node missing"):
            GraphResolvers().resolve_source_value(canvas, canvas.edges[0])


class TestGetInputValue:
    def test_single_input(self) -> None:
        canvas = _canvas(("a", "hello"))

        value = GraphResolvers().get_input_value(
            canvas, "m", data_type=DataType.TEXT
        )

        assert value is not None
        assert value["data"] == "hello"

    def test_not_connected_required(self) -> None:
        canvas = _canvas()

        with pytest.raises(InputResolutionError, match="Required Text input"):
            GraphResolvers().get_input_value(canvas, "m", data_type=DataType.TEXT)

    def test_not_connected_optional(self) -> None:
        canvas = _canvas()

        assert (
            GraphResolvers().get_input_value(
                canvas, "m", data_type=DataType.TEXT, required=False
            )
            is None
        )

    def test_connected_without_value(self) -> None:
        canvas = _canvas(("a", None))

        with pytest.raises(InputResolutionError, match="No value received"):
            GraphResolvers().get_input_value(canvas, "m")

    def test_type_filter(self) -> None:
        canvas = _canvas(("a", "hello"))

        with pytest.raises(InputResolutionError, match="Required Image input"):
            GraphResolvers().get_input_value(canvas, "m", data_type=DataType.IMAGE)

    def test_label_filter(self) -> None:
        canvas = _canvas(("a", "first"), ("b", "second"), labels=True)

        value = GraphResolvers().get_input_value(canvas, "m", label="L1")

        assert value is not None
        assert value["data"] == "second"

    def test_label_in_error_message(self) -> None:
        canvas = _canvas(("a", "x"), labels=True)

        with pytest.raises(InputResolutionError, match='label "style"'):
            GraphResolvers().get_input_value(canvas, "m", label="style")

    def test_multiple_edges_use_lowest_handle_order(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        canvas = _canvas(("a", "first"), ("b", "second"))

        value = GraphResolvers().get_input_value(canvas, "m")

        # b's handle has the lower order
        assert value is not None
        assert value["data"] == "second"
        assert "Multiple" in caplog.text


class TestMultiValueResolvers:
    def test_values_by_type_in_handle_order(self) -> None:
        canvas = _canvas(("a", "A"), ("b", None), ("c", "C"))

        values = GraphResolvers().get_input_values_by_type(
            canvas, "m", data_type=DataType.TEXT
        )

        assert [v["data"] if v else None for v in values] == ["C", None, "A"]

    def test_output_handles(self) -> None:
        canvas = _canvas(("a", "A"))

        handles = GraphResolvers().get_all_output_handles(canvas, "m")

        assert [h.handle_id for h in handles] == ["m-out"]

    def test_all_input_values_with_handle(self) -> None:
        canvas = _canvas(("a", "A"), ("b", "B"))

        pairs = GraphResolvers().get_all_input_values_with_handle(canvas, "m")

        assert [h.handle_id for h, _ in pairs if h] == ["m-in1", "m-in0"]
        assert [v["data"] for _, v in pairs if v] == ["B", "A"]
